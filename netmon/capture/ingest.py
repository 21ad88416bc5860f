"""Event ingest loop driving the correlation store.

This module provides the EventIngestLoop class, the single subscriber on a
DevTools event channel. It dispatches request, response and body events to
the CorrelationStore and requests response bodies for promoted records.
"""

import base64
import binascii
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from .channel import ChannelEvent, EventKind
from .errors import ChannelClosedError
from .store import CorrelationStore

logger = logging.getLogger(__name__)

BODY_FETCH_COMMAND = "Network.getResponseBody"


def _headers(raw: Any) -> Dict[str, str]:
    """Coerce a DevTools header object into a str -> str mapping."""
    if not isinstance(raw, dict):
        return {}
    return {str(name): str(value) for name, value in raw.items()}


def decode_body(result: Dict[str, Any]) -> str:
    """Decode a body-fetch result into text."""
    body = result.get("body") or ""
    if result.get("base64Encoded"):
        try:
            return base64.b64decode(body).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Could not decode base64 response body: {e}")
            return ""
    return str(body)


class EventIngestLoop:
    """Consumes channel events and applies them to a correlation store."""

    def __init__(self, channel: Any, store: CorrelationStore):
        """Initialize ingest loop.

        Args:
            channel: Event channel exposing ``send`` and ``messages``
            store: Correlation store owned by the monitoring session
        """
        self.channel = channel
        self.store = store
        self.events_seen = 0
        self.events_skipped = 0
        self._handlers: Dict[str, Callable[[ChannelEvent], None]] = {
            EventKind.REQUEST: self._on_request,
            EventKind.RESPONSE: self._on_response,
            EventKind.BODY: self._on_body,
            EventKind.LOADING_FAILED: self._on_loading_failed,
        }

    async def run(self) -> None:
        """Consume events until the channel closes."""
        logger.info("Event ingest started")
        try:
            async for event in self.channel.messages():
                self.handle_event(event)
        except ChannelClosedError as e:
            logger.info(f"Event ingest stopped: {e}")
            return
        except Exception:
            logger.exception(f"Event ingest failed after {self.events_seen} events")
            return
        logger.info(f"Event ingest finished after {self.events_seen} events")

    def handle_event(self, event: ChannelEvent) -> None:
        """Dispatch one event; events of unknown kind are ignored."""
        handler = self._handlers.get(event.kind)
        if handler is None:
            return

        self.events_seen += 1
        try:
            handler(event)
        except (KeyError, TypeError, AttributeError, ValueError, ValidationError) as e:
            self.events_skipped += 1
            logger.warning(f"Skipping malformed {event.kind} event: {e!r}")

    def _on_request(self, event: ChannelEvent) -> None:
        request = event.payload["request"]
        self.store.begin_request(
            correlation_id=event.correlation_id,
            url=request["url"],
            method=request["method"],
            headers=_headers(request.get("headers")),
            body=request.get("postData"),
            timestamp=event.timestamp or 0.0,
        )

    def _on_response(self, event: ChannelEvent) -> None:
        response = event.payload["response"]
        promoted, record = self.store.complete_response(
            correlation_id=event.correlation_id,
            status=response["status"],
            headers=_headers(response.get("headers")),
            mime_type=response.get("mimeType"),
            timestamp=event.timestamp or 0.0,
        )
        if promoted:
            self._request_body(event.correlation_id)

    def _request_body(self, correlation_id: Optional[str]) -> None:
        try:
            self.channel.send(BODY_FETCH_COMMAND, {"requestId": correlation_id})
        except ChannelClosedError as e:
            logger.warning(f"Body fetch not sent for {correlation_id}: {e}")

    def _on_body(self, event: ChannelEvent) -> None:
        self.store.attach_body(decode_body(event.payload))

    def _on_loading_failed(self, event: ChannelEvent) -> None:
        if self.store.discard_pending(event.correlation_id):
            logger.debug(
                f"Load failed for {event.correlation_id}: {event.payload.get('errorText')}"
            )
