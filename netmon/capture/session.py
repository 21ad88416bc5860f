"""Monitoring session orchestration.

This module provides the MonitorSession class that owns one event channel,
one correlation store and the ingest task connecting them, and exposes the
start / update_filter / stop / list_recent / get_detail operations.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, Optional, Union

from pydantic import ValidationError

from .browser_factory import BrowserProvider, EndpointInfo
from .channel import CdpChannel
from .config import MonitorConfig
from .errors import CaptureStartError, ConfigurationError, NotMonitoringError
from .ingest import EventIngestLoop
from .query import BodyMode, NotFound, Projection, RecordQuery, get_detail, list_recent
from .store import CorrelationStore, validate_capacity
from ..models.capture import FilterConfig

logger = logging.getLogger(__name__)

FilterInput = Union[FilterConfig, Dict[str, Any], None]


def parse_filter(raw: FilterInput) -> FilterConfig:
    """Validate a caller-supplied filter.

    Raises:
        ConfigurationError: If the filter has an invalid shape
    """
    if raw is None:
        return FilterConfig()
    if isinstance(raw, FilterConfig):
        return raw
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Filter must be an object, got {type(raw).__name__}")
    try:
        return FilterConfig(**raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid filter: {e}") from e


class MonitorSession:
    """One monitoring session: a channel, a store and the ingest task."""

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        provider: Optional[BrowserProvider] = None,
        channel_factory: Optional[Callable[[str], Any]] = None,
    ):
        """Initialize session.

        Args:
            config: Monitoring defaults (buffer size, filter, port, caps)
            provider: Browser-lifecycle provider
            channel_factory: Builds an event channel for a websocket URL
        """
        self.config = config or MonitorConfig()
        self.provider = provider or BrowserProvider(self.config.get_browser_config())
        self._channel_factory = channel_factory or (
            lambda ws_url: CdpChannel(ws_url, connect_timeout=self.config.connect_timeout_s)
        )
        self.channel: Optional[Any] = None
        self.store: Optional[CorrelationStore] = None
        self.endpoint: Optional[EndpointInfo] = None
        self._ingest: Optional[EventIngestLoop] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_monitoring(self) -> bool:
        return self.store is not None

    @property
    def is_ingesting(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(
        self,
        max_buffer_size: Optional[int] = None,
        filter: FilterInput = None,
        cdp_port: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Start capturing network traffic.

        Args:
            max_buffer_size: Number of retained records (1..50)
            filter: Filter configuration; defaults to the configured filter
            cdp_port: Remote debugging port of the browser

        Returns:
            Status dictionary with buffer size, filter and endpoint info

        Raises:
            ConfigurationError: If arguments are invalid (nothing is started)
            CaptureStartError: If the browser or channel cannot be reached
        """
        capacity = validate_capacity(
            self.config.max_buffer_size if max_buffer_size is None else max_buffer_size
        )
        filter_config = self.config.filter if filter is None else parse_filter(filter)
        port = self.config.cdp_port if cdp_port is None else cdp_port

        if self.is_monitoring:
            logger.info("Restarting running monitoring session")
            await self.stop()

        endpoint = await self.provider.ensure_running(port)
        channel = self._channel_factory(endpoint.ws_url)
        try:
            await channel.connect()
        except CaptureStartError:
            if not endpoint.browser_already_running:
                logger.info("Closing browser launched for a session that failed to connect")
                await self.provider.shutdown()
            raise

        store = CorrelationStore(capacity=capacity, config=filter_config)
        self._ingest = EventIngestLoop(channel, store)
        self.channel = channel
        self.store = store
        self.endpoint = endpoint
        self._task = asyncio.create_task(self._ingest.run())

        logger.info(f"Monitoring started on {endpoint.ws_url} (buffer={capacity})")
        return {
            "status": "started",
            "buffer_size": capacity,
            "filter": filter_config.to_public(),
            "endpoint_info": endpoint.to_dict(),
        }

    async def update_filter(self, filter: FilterInput) -> Dict[str, Any]:
        """Replace the filter, clearing pending and retained records.

        Raises:
            NotMonitoringError: If no session is running
            ConfigurationError: If the filter is invalid (nothing changes)
        """
        if self.store is None:
            raise NotMonitoringError("Monitoring is not started; call start first")
        filter_config = parse_filter(filter)
        removed = self.store.reconfigure(filter_config)
        return {
            "status": "filter_updated",
            "removed_count": removed,
            "remaining_count": len(self.store),
            "filter": filter_config.to_public(),
        }

    async def stop(self) -> Dict[str, Any]:
        """Stop capturing and discard all records. Safe to call repeatedly."""
        task, self._task = self._task, None
        channel, self.channel = self.channel, None

        if task is not None:
            if task.done():
                if not task.cancelled() and task.exception() is not None:
                    logger.warning(f"Event ingest had ended with an error: {task.exception()!r}")
            else:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if channel is not None:
            await channel.close()

        if self.store is not None:
            logger.info("Monitoring stopped")
        self.store = None
        self._ingest = None
        self.endpoint = None
        return {"status": "stopped"}

    async def close(self) -> None:
        """Stop monitoring and shut down a browser this session launched."""
        await self.stop()
        await self.provider.shutdown()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def list_recent(
        self,
        count: int = 10,
        include_headers: bool = False,
        body_mode: Union[BodyMode, str] = BodyMode.PREVIEW,
        methods: Optional[Iterable[str]] = None,
        url_pattern: Optional[str] = None,
        content_types: Optional[Iterable[str]] = None,
    ) -> Dict[str, Any]:
        """List retained records, newest first."""
        try:
            mode = BodyMode(body_mode)
        except ValueError as e:
            raise ConfigurationError(f"Unknown body mode: {body_mode!r}") from e

        query = None
        if methods or url_pattern or content_types:
            query = RecordQuery(
                methods=frozenset(m.upper() for m in methods) if methods else None,
                url_pattern=url_pattern or None,
                content_types=tuple(content_types) if content_types else None,
            )

        projection = Projection(
            include_headers=include_headers,
            body_mode=mode,
            preview_bytes=self.config.preview_bytes,
        )
        records = self.store.snapshot() if self.store is not None else ()
        return list_recent(records, count=count, projection=projection, query=query)

    def get_detail(self, external_id: str, include_headers: bool = False) -> Dict[str, Any]:
        """Return one retained record, or a NotFound result."""
        records = self.store.snapshot() if self.store is not None else ()
        result = get_detail(
            records,
            external_id,
            include_headers=include_headers,
            cap_bytes=self.config.detail_cap_bytes,
        )
        if isinstance(result, NotFound):
            return result.to_dict()
        return result

    def status(self) -> Dict[str, Any]:
        """Summary of the session and its store counters."""
        if self.store is None:
            return {"status": "stopped"}
        return {
            "status": "started",
            "ingesting": self.is_ingesting,
            "buffer_size": self.store.capacity,
            "total_captured": len(self.store),
            "pending": self.store.pending_count,
            "filter": self.store.config.to_public(),
            "endpoint_info": self.endpoint.to_dict() if self.endpoint else None,
            "stats": self.store.get_stats(),
        }

    def __repr__(self) -> str:
        return f"MonitorSession(monitoring={self.is_monitoring}, store={self.store!r})"
