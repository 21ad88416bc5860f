"""Shared test fixtures and configuration for netmon tests."""

import asyncio
import base64
from pathlib import Path
from typing import Any, Dict, List, Optional
import sys

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from netmon.capture.browser_factory import EndpointInfo
from netmon.capture.channel import ChannelEvent, EventKind
from netmon.capture.errors import ChannelClosedError
from netmon.capture.store import CorrelationStore
from netmon.models.capture import FilterConfig


class FakeChannel:
    """In-memory event channel that replays queued events."""

    def __init__(self, events: Optional[List[ChannelEvent]] = None):
        self.events: List[ChannelEvent] = list(events or [])
        self.sent: List[Dict[str, Any]] = []
        self.connected = False
        self.closed = False
        self.hold_open = False
        self._next_id = 0

    @property
    def is_open(self) -> bool:
        return self.connected and not self.closed

    async def connect(self) -> None:
        self.connected = True

    def send(self, method: str, params: Optional[Dict[str, Any]] = None) -> int:
        if not self.is_open:
            raise ChannelClosedError(f"Cannot send {method}: channel is closed")
        self._next_id += 1
        self.sent.append({"id": self._next_id, "method": method, "params": params or {}})
        return self._next_id

    async def messages(self):
        for event in self.events:
            yield event
        while self.hold_open and not self.closed:
            await asyncio.sleep(0.01)

    async def close(self) -> None:
        self.closed = True


class FakeProvider:
    """Browser provider that hands out a fixed endpoint."""

    def __init__(self, ws_url: str = "ws://localhost:9222/devtools/page/TEST"):
        self.ws_url = ws_url
        self.ports: List[int] = []
        self.shutdown_calls = 0

    async def ensure_running(self, port: int = 9222) -> EndpointInfo:
        self.ports.append(port)
        return EndpointInfo(ws_url=self.ws_url, port=port, browser_already_running=True)

    async def shutdown(self) -> None:
        self.shutdown_calls += 1


def make_request_event(
    correlation_id: str,
    url: str = "https://example.com/api/items",
    method: str = "GET",
    timestamp: float = 1.0,
    post_data: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> ChannelEvent:
    request: Dict[str, Any] = {
        "url": url,
        "method": method,
        "headers": headers or {"Accept": "application/json"},
    }
    if post_data is not None:
        request["postData"] = post_data
    return ChannelEvent(
        kind=EventKind.REQUEST,
        correlation_id=correlation_id,
        payload={"requestId": correlation_id, "request": request, "timestamp": timestamp},
        timestamp=timestamp,
    )


def make_response_event(
    correlation_id: str,
    mime_type: Optional[str] = "application/json",
    status: int = 200,
    timestamp: float = 2.0,
    headers: Optional[Dict[str, str]] = None,
) -> ChannelEvent:
    response: Dict[str, Any] = {
        "status": status,
        "headers": headers or {"Content-Type": mime_type or ""},
        "mimeType": mime_type,
    }
    return ChannelEvent(
        kind=EventKind.RESPONSE,
        correlation_id=correlation_id,
        payload={"requestId": correlation_id, "response": response, "timestamp": timestamp},
        timestamp=timestamp,
    )


def make_body_event(body: str, base64_encoded: bool = False) -> ChannelEvent:
    if base64_encoded:
        body = base64.b64encode(body.encode("utf-8")).decode("ascii")
    return ChannelEvent(
        kind=EventKind.BODY,
        payload={"body": body, "base64Encoded": base64_encoded},
    )


@pytest.fixture
def cdp():
    """Builders for DevTools network events."""
    class Builders:
        request = staticmethod(make_request_event)
        response = staticmethod(make_response_event)
        body = staticmethod(make_body_event)

        @staticmethod
        def loading_failed(correlation_id: str, error_text: str = "net::ERR_FAILED") -> ChannelEvent:
            return ChannelEvent(
                kind=EventKind.LOADING_FAILED,
                correlation_id=correlation_id,
                payload={"requestId": correlation_id, "errorText": error_text},
            )

    return Builders


@pytest.fixture
def default_filter():
    """Default filter: API content types, every URL and method."""
    return FilterConfig()


@pytest.fixture
def store(default_filter):
    """Correlation store with a small buffer."""
    return CorrelationStore(capacity=5, config=default_filter)


@pytest.fixture
def fake_channel():
    """Fake event channel that has been connected."""
    channel = FakeChannel()
    channel.connected = True
    return channel


@pytest.fixture
def fake_channel_class():
    return FakeChannel


@pytest.fixture
def fake_provider():
    return FakeProvider()


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
