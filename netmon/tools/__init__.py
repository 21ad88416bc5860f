"""Tool surface for netmon: argument schemas and the dispatch boundary."""

from .dispatch import TOOLS, ToolDispatcher, ToolSpec
from .schemas import GetDetailArgs, ListRecentArgs, NoArgs, StartArgs, UpdateFilterArgs

__all__ = [
    "TOOLS",
    "ToolDispatcher",
    "ToolSpec",
    "StartArgs",
    "UpdateFilterArgs",
    "ListRecentArgs",
    "GetDetailArgs",
    "NoArgs",
]
