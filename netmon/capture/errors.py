"""Exception taxonomy for the capture pipeline.

Only resource acquisition failures and invalid caller input are raised.
Malformed events, bad filter patterns and lookup misses are modeled as
ordinary outcomes and never surface as exceptions.
"""


class NetmonError(Exception):
    """Base class for errors surfaced to tool callers."""
    pass


class ConfigurationError(NetmonError):
    """Invalid filter shape, buffer size or record id supplied by the caller."""
    pass


class CaptureStartError(NetmonError):
    """The browser or its DevTools event channel could not be reached."""
    pass


class NotMonitoringError(NetmonError):
    """Operation requires a running monitoring session."""
    pass


class ChannelClosedError(NetmonError):
    """Command issued on an event channel that is not open."""
    pass
