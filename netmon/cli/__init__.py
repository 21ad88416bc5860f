"""Command-line interface for netmon."""
