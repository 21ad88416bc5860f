"""Network capture pipeline for netmon.

This package attaches to a DevTools-enabled browser, correlates the
asynchronous request, response and body events of each HTTP exchange, keeps
the ones that pass filtering in a bounded buffer, and answers queries over
that buffer.

Main Components:
- Filters: Early (URL, method) and late (content type) inclusion checks
- Correlation Store: Pending set plus bounded FIFO buffer of records
- Event Channel: DevTools websocket delivering network events
- Ingest Loop: Single consumer applying events to the store
- Query: Newest-first listing and single-record detail projections
- Browser Provider: Reuse or launch of the browser being observed
- Monitor Session: start / update_filter / stop orchestration

Usage:
    from netmon.capture import MonitorSession

    async with MonitorSession() as session:
        await session.start(max_buffer_size=20)
        recent = session.list_recent(count=5)
"""

__all__ = [
    # Errors
    "NetmonError",
    "ConfigurationError",
    "CaptureStartError",
    "NotMonitoringError",
    "ChannelClosedError",

    # Pipeline
    "CorrelationStore",
    "EventIngestLoop",
    "CdpChannel",
    "ChannelEvent",
    "EventKind",

    # Queries
    "BodyMode",
    "NotFound",
    "Projection",
    "RecordQuery",

    # Browser and session
    "BrowserProvider",
    "BrowserConfig",
    "EndpointInfo",
    "MonitorSession",
    "MonitorConfig",
    "MonitorConfigManager",
    "get_config",
]

from .errors import (
    NetmonError,
    ConfigurationError,
    CaptureStartError,
    NotMonitoringError,
    ChannelClosedError,
)

from .store import CorrelationStore
from .ingest import EventIngestLoop
from .channel import CdpChannel, ChannelEvent, EventKind
from .query import BodyMode, NotFound, Projection, RecordQuery

from .browser_factory import BrowserProvider, BrowserConfig, EndpointInfo
from .config import MonitorConfig, MonitorConfigManager, get_config
from .session import MonitorSession
