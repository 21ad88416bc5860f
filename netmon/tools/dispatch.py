"""Tool dispatch boundary.

This module provides the ToolDispatcher class that validates tool arguments,
routes calls to a MonitorSession and converts every outcome into a
structured result. It is the only place where exceptions are caught
wholesale.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import ValidationError

from .schemas import GetDetailArgs, ListRecentArgs, NoArgs, StartArgs, ToolArgs, UpdateFilterArgs
from ..capture.errors import NetmonError
from ..capture.session import MonitorSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """A named tool with its argument model."""
    name: str
    description: str
    args_model: Type[ToolArgs]


TOOLS: List[ToolSpec] = [
    ToolSpec(
        "start",
        "Start capturing browser network traffic (launches or reuses a browser)",
        StartArgs,
    ),
    ToolSpec(
        "update_filter",
        "Replace the capture filter; clears captured and pending requests",
        UpdateFilterArgs,
    ),
    ToolSpec(
        "stop",
        "Stop capturing and discard captured requests",
        NoArgs,
    ),
    ToolSpec(
        "list_recent",
        "List captured requests, newest first",
        ListRecentArgs,
    ),
    ToolSpec(
        "get_detail",
        "Get one captured request with bodies capped at 50 KiB",
        GetDetailArgs,
    ),
    ToolSpec(
        "status",
        "Show whether monitoring is running and its counters",
        NoArgs,
    ),
]


def error_result(error_type: str, message: str) -> Dict[str, Any]:
    return {"ok": False, "error": {"type": error_type, "message": message}}


class ToolDispatcher:
    """Routes tool calls to a monitoring session."""

    def __init__(self, session: Optional[MonitorSession] = None):
        self.session = session or MonitorSession()
        self._specs: Dict[str, ToolSpec] = {spec.name: spec for spec in TOOLS}
        self._handlers: Dict[str, Callable[[Any], Awaitable[Any]]] = {
            "start": self._start,
            "update_filter": self._update_filter,
            "stop": self._stop,
            "list_recent": self._list_recent,
            "get_detail": self._get_detail,
            "status": self._status,
        }

    def list_tools(self) -> List[Dict[str, Any]]:
        """Describe available tools with their JSON argument schemas."""
        return [
            {
                "name": spec.name,
                "description": spec.description,
                "input_schema": spec.args_model.model_json_schema(),
            }
            for spec in TOOLS
        ]

    async def call(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Invoke a tool.

        Args:
            name: Tool name
            arguments: Tool arguments as a JSON object

        Returns:
            ``{"ok": True, "result": ...}`` or ``{"ok": False, "error": {...}}``
        """
        spec = self._specs.get(name)
        if spec is None:
            return error_result("UnknownTool", f"Unknown tool: {name}")

        try:
            args = spec.args_model.model_validate(arguments or {})
        except ValidationError as e:
            return error_result("ConfigurationError", f"Invalid arguments for {name}: {e}")

        try:
            result = await self._handlers[name](args)
        except NetmonError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return error_result(type(e).__name__, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in tool {name}")
            return error_result("InternalError", str(e))

        return {"ok": True, "result": result}

    async def _start(self, args: StartArgs) -> Dict[str, Any]:
        return await self.session.start(
            max_buffer_size=args.max_buffer_size,
            filter=args.filter,
            cdp_port=args.cdp_port,
        )

    async def _update_filter(self, args: UpdateFilterArgs) -> Dict[str, Any]:
        return await self.session.update_filter(args.filter)

    async def _stop(self, args: NoArgs) -> Dict[str, Any]:
        return await self.session.stop()

    async def _list_recent(self, args: ListRecentArgs) -> Dict[str, Any]:
        return self.session.list_recent(
            count=args.count,
            include_headers=args.include_headers,
            body_mode=args.body_mode,
            methods=args.methods,
            url_pattern=args.url_pattern,
            content_types=args.content_types,
        )

    async def _get_detail(self, args: GetDetailArgs) -> Dict[str, Any]:
        return self.session.get_detail(args.external_id, include_headers=args.include_headers)

    async def _status(self, args: NoArgs) -> Dict[str, Any]:
        return self.session.status()
