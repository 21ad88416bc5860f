"""Unit tests for the DevTools event channel."""

import asyncio
import json

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from netmon.capture.channel import CdpChannel, EventKind, parse_message
from netmon.capture.errors import CaptureStartError, ChannelClosedError
from netmon.capture.ingest import EventIngestLoop
from netmon.capture.store import CorrelationStore


class TestParseMessage:
    """Tests for raw message translation."""

    def test_request_event(self):
        event = parse_message(json.dumps({
            "method": "Network.requestWillBeSent",
            "params": {
                "requestId": "1000.7",
                "timestamp": 123.5,
                "request": {"url": "https://example.com/api", "method": "GET", "headers": {}},
            },
        }))
        assert event.kind == EventKind.REQUEST
        assert event.correlation_id == "1000.7"
        assert event.timestamp == 123.5
        assert event.payload["request"]["url"] == "https://example.com/api"

    def test_response_and_failure_events(self):
        response = parse_message('{"method": "Network.responseReceived", "params": {"requestId": "1"}}')
        failed = parse_message('{"method": "Network.loadingFailed", "params": {"requestId": "1"}}')
        assert response.kind == EventKind.RESPONSE
        assert failed.kind == EventKind.LOADING_FAILED

    def test_unconsumed_event_keeps_method_name(self):
        event = parse_message('{"method": "Network.dataReceived", "params": {"requestId": "9"}}')
        assert event.kind == "Network.dataReceived"

    def test_body_reply(self):
        event = parse_message('{"id": 4, "result": {"body": "eyJ9", "base64Encoded": true}}')
        assert event.kind == EventKind.BODY
        assert event.correlation_id is None
        assert event.payload == {"body": "eyJ9", "base64Encoded": True}

    def test_other_reply(self):
        event = parse_message('{"id": 1, "result": {}}')
        assert event.kind == EventKind.REPLY

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '"text"',
        '{"method": "Network.requestWillBeSent", "params": [1]}',
        '{"method": ["Network.requestWillBeSent"], "params": {}}',
    ])
    def test_malformed_messages(self, raw):
        with pytest.raises(ValueError):
            parse_message(raw)


class TestCdpChannel:
    """Tests for CdpChannel over a mocked aiohttp websocket."""

    @pytest.fixture
    def mock_ws(self):
        ws = MagicMock()
        ws.closed = False
        ws.send_str = AsyncMock()
        ws.close = AsyncMock()
        return ws

    @pytest.fixture
    def mock_session(self, mock_ws):
        session = MagicMock()
        session.ws_connect = AsyncMock(return_value=mock_ws)
        session.close = AsyncMock()
        return session

    @pytest.mark.asyncio
    async def test_connect_enables_network_domain(self, mock_session, mock_ws):
        with patch("netmon.capture.channel.aiohttp.ClientSession", return_value=mock_session):
            channel = CdpChannel("ws://localhost:9222/devtools/page/A")
            await channel.connect()

        assert channel.is_open
        sent = json.loads(mock_ws.send_str.await_args.args[0])
        assert sent == {"id": 1, "method": "Network.enable", "params": {}}

    @pytest.mark.asyncio
    async def test_connect_failure_raises_start_error(self, mock_session):
        mock_session.ws_connect = AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        with patch("netmon.capture.channel.aiohttp.ClientSession", return_value=mock_session):
            channel = CdpChannel("ws://localhost:9/devtools/page/A")
            with pytest.raises(CaptureStartError):
                await channel.connect()

        assert not channel.is_open
        mock_session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_timeout_raises_start_error(self, mock_session):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)

        mock_session.ws_connect = hang
        with patch("netmon.capture.channel.aiohttp.ClientSession", return_value=mock_session):
            channel = CdpChannel("ws://localhost:9222/devtools/page/A", connect_timeout=0.05)
            with pytest.raises(CaptureStartError):
                await channel.connect()

    @pytest.mark.asyncio
    async def test_send_is_fire_and_forget(self, mock_session, mock_ws):
        with patch("netmon.capture.channel.aiohttp.ClientSession", return_value=mock_session):
            channel = CdpChannel("ws://localhost:9222/devtools/page/A")
            await channel.connect()

        command_id = channel.send("Network.getResponseBody", {"requestId": "1"})
        await asyncio.sleep(0)

        assert command_id == 2
        sent = json.loads(mock_ws.send_str.await_args.args[0])
        assert sent["method"] == "Network.getResponseBody"
        assert sent["params"] == {"requestId": "1"}

    def test_send_on_closed_channel_raises(self):
        channel = CdpChannel("ws://localhost:9222/devtools/page/A")
        with pytest.raises(ChannelClosedError):
            channel.send("Network.enable")

    @pytest.mark.asyncio
    async def test_messages_skip_malformed_and_stop_on_error(self, mock_session, mock_ws):
        def msg(kind, data=None):
            m = MagicMock()
            m.type = kind
            m.data = data
            return m

        mock_ws.__aiter__.return_value = [
            msg(aiohttp.WSMsgType.TEXT, '{"method": "Network.responseReceived", "params": {"requestId": "1"}}'),
            msg(aiohttp.WSMsgType.TEXT, "garbage"),
            msg(aiohttp.WSMsgType.TEXT, '{"id": 2, "result": {"body": "x"}}'),
            msg(aiohttp.WSMsgType.ERROR),
            msg(aiohttp.WSMsgType.TEXT, '{"method": "Network.requestWillBeSent", "params": {}}'),
        ]
        mock_ws.exception = MagicMock(return_value=RuntimeError("boom"))

        with patch("netmon.capture.channel.aiohttp.ClientSession", return_value=mock_session):
            channel = CdpChannel("ws://localhost:9222/devtools/page/A")
            await channel.connect()

        events = [event async for event in channel.messages()]
        assert [e.kind for e in events] == [EventKind.RESPONSE, EventKind.BODY]

    @pytest.mark.asyncio
    async def test_bad_event_shape_does_not_stop_ingest(self, mock_session, mock_ws):
        def msg(data):
            m = MagicMock()
            m.type = aiohttp.WSMsgType.TEXT
            m.data = data
            return m

        mock_ws.__aiter__.return_value = [
            msg('{"method": "Network.requestWillBeSent", "params": [1]}'),
            msg('{"method": ["Network.requestWillBeSent"], "params": {}}'),
            msg(json.dumps({
                "method": "Network.requestWillBeSent",
                "params": {
                    "requestId": "7",
                    "timestamp": 1.0,
                    "request": {"url": "https://example.com/api", "method": "GET", "headers": {}},
                },
            })),
        ]

        with patch("netmon.capture.channel.aiohttp.ClientSession", return_value=mock_session):
            channel = CdpChannel("ws://localhost:9222/devtools/page/A")
            await channel.connect()

        store = CorrelationStore(capacity=5)
        await EventIngestLoop(channel, store).run()

        assert store.is_pending("7")

    @pytest.mark.asyncio
    async def test_messages_before_connect_raises(self):
        channel = CdpChannel("ws://localhost:9222/devtools/page/A")
        with pytest.raises(ChannelClosedError):
            async for _ in channel.messages():
                pass

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, mock_session, mock_ws):
        with patch("netmon.capture.channel.aiohttp.ClientSession", return_value=mock_session):
            channel = CdpChannel("ws://localhost:9222/devtools/page/A")
            await channel.connect()

        await channel.close()
        await channel.close()

        assert not channel.is_open
        mock_ws.close.assert_awaited_once()
        mock_session.close.assert_awaited_once()
