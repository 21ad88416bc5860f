"""DevTools event channel over an aiohttp websocket.

This module provides the CdpChannel class that connects to a page's
DevTools websocket, enables the Network domain, yields network lifecycle
events as ChannelEvent objects and sends follow-up commands such as
body fetches.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Set

import aiohttp

from .errors import CaptureStartError, ChannelClosedError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0


class EventKind:
    """Event kinds delivered by the channel."""
    REQUEST = "request"
    RESPONSE = "response"
    BODY = "body"
    LOADING_FAILED = "loading_failed"
    REPLY = "reply"


# DevTools method names mapped to event kinds
CDP_EVENT_KINDS: Dict[str, str] = {
    "Network.requestWillBeSent": EventKind.REQUEST,
    "Network.responseReceived": EventKind.RESPONSE,
    "Network.loadingFailed": EventKind.LOADING_FAILED,
}


@dataclass(frozen=True)
class ChannelEvent:
    """One message from the event channel."""
    kind: str
    correlation_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[float] = None


def parse_message(raw: str) -> ChannelEvent:
    """Translate a raw DevTools message into a ChannelEvent.

    Args:
        raw: JSON text received on the websocket

    Returns:
        ChannelEvent; events the pipeline does not consume keep their
        DevTools method name as kind

    Raises:
        ValueError: If the message is not a JSON object or an event has a
            non-string method or non-object params
    """
    message = json.loads(raw)
    if not isinstance(message, dict):
        raise ValueError(f"Expected a JSON object, got {type(message).__name__}")

    method = message.get("method")
    if method:
        if not isinstance(method, str):
            raise ValueError(f"Expected a string method, got {type(method).__name__}")
        params = message.get("params") or {}
        if not isinstance(params, dict):
            raise ValueError(f"Expected object params for {method}, got {type(params).__name__}")
        return ChannelEvent(
            kind=CDP_EVENT_KINDS.get(method, method),
            correlation_id=params.get("requestId"),
            payload=params,
            timestamp=params.get("timestamp"),
        )

    # Command replies echo only the command id, never the request id
    result = message.get("result")
    if isinstance(result, dict) and "body" in result:
        return ChannelEvent(kind=EventKind.BODY, payload=result)
    return ChannelEvent(kind=EventKind.REPLY, payload=message)


class CdpChannel:
    """Duplex DevTools channel: network events in, commands out."""

    def __init__(
        self,
        ws_url: str,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        """Initialize channel.

        Args:
            ws_url: Page websocket debugger URL
            connect_timeout: Seconds to wait for the websocket handshake
        """
        self.ws_url = ws_url
        self.connect_timeout = connect_timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._next_id = 0
        self._send_tasks: Set[asyncio.Task] = set()

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self) -> None:
        """Open the websocket and enable network events.

        Raises:
            CaptureStartError: If the handshake fails or times out
        """
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self.ws_url, max_msg_size=0),
                timeout=self.connect_timeout,
            )
            await self._ws.send_str(self._encode("Network.enable", {}))
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await self.close()
            raise CaptureStartError(f"Failed to connect to DevTools at {self.ws_url}: {e}") from e

        logger.info(f"DevTools channel connected: {self.ws_url}")

    def _encode(self, method: str, params: Dict[str, Any]) -> str:
        self._next_id += 1
        return json.dumps({"id": self._next_id, "method": method, "params": params})

    def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> int:
        """Queue a command without waiting for it to be written.

        Returns:
            Command id assigned to the message

        Raises:
            ChannelClosedError: If the channel is not open
        """
        if not self.is_open:
            raise ChannelClosedError(f"Cannot send {method}: channel is closed")

        payload = self._encode(method, params or {})
        task = asyncio.get_running_loop().create_task(self._ws.send_str(payload))
        self._send_tasks.add(task)
        task.add_done_callback(self._on_send_done)
        return self._next_id

    def _on_send_done(self, task: asyncio.Task) -> None:
        self._send_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"DevTools command failed to send: {task.exception()}")

    async def messages(self) -> AsyncIterator[ChannelEvent]:
        """Yield events until the websocket closes.

        Unparseable messages are logged and skipped.
        """
        if self._ws is None:
            raise ChannelClosedError("Channel is not connected")

        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    yield parse_message(msg.data)
                except ValueError as e:
                    logger.warning(f"Skipping malformed DevTools message: {e}")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error(f"DevTools channel error: {self._ws.exception()}")
                break

        logger.info("DevTools channel closed")

    async def close(self) -> None:
        """Close the websocket and its HTTP session."""
        for task in list(self._send_tasks):
            task.cancel()
        self._send_tasks.clear()

        try:
            if self._ws is not None:
                await self._ws.close()
        except Exception as e:
            logger.warning(f"Error closing DevTools websocket: {e}")
        finally:
            self._ws = None

        if self._session is not None:
            await self._session.close()
            self._session = None

    def __repr__(self) -> str:
        return f"CdpChannel(url={self.ws_url!r}, open={self.is_open})"
