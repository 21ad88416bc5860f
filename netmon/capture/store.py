"""Correlation store for pending and retained network records.

This module provides the CorrelationStore class that merges asynchronous
request, response and body events into NetworkRecord objects. Records wait
in a pending map keyed by correlation id until their response is judged,
and survivors are kept in a bounded FIFO buffer.
"""

import logging
from collections import deque
from dataclasses import dataclass, asdict
from typing import Deque, Dict, Optional, Tuple

from .errors import ConfigurationError
from .filters import passes_early, passes_late
from ..models.capture import FilterConfig, NetworkRecord, ResponseMeta

logger = logging.getLogger(__name__)

MAX_BUFFER_SIZE = 50
DEFAULT_BUFFER_SIZE = 20


def validate_capacity(capacity: int) -> int:
    """Check a buffer capacity against the allowed range."""
    if isinstance(capacity, bool) or not isinstance(capacity, int):
        raise ConfigurationError(f"Buffer size must be an integer, got {capacity!r}")
    if not 1 <= capacity <= MAX_BUFFER_SIZE:
        raise ConfigurationError(
            f"Buffer size must be between 1 and {MAX_BUFFER_SIZE}, got {capacity}"
        )
    return capacity


@dataclass
class StoreStats:
    """Counters for records flowing through the store."""
    accepted: int = 0
    rejected_early: int = 0
    promoted: int = 0
    rejected_late: int = 0
    evicted: int = 0
    bodies_attached: int = 0
    failed_loads: int = 0

    def export(self) -> Dict[str, int]:
        """Export statistics as dictionary."""
        return asdict(self)


class CorrelationStore:
    """Owns the pending set and the bounded buffer of promoted records."""

    def __init__(
        self,
        capacity: int = DEFAULT_BUFFER_SIZE,
        config: Optional[FilterConfig] = None,
    ):
        """Initialize the store.

        Args:
            capacity: Maximum number of retained records (1..50)
            config: Filter configuration used when callers pass none

        Raises:
            ConfigurationError: If capacity is out of range
        """
        self._capacity = validate_capacity(capacity)
        self.config = config or FilterConfig()
        self._pending: Dict[str, NetworkRecord] = {}
        self._buffer: Deque[NetworkRecord] = deque(maxlen=self._capacity)
        self.stats = StoreStats()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, correlation_id: str) -> bool:
        return correlation_id in self._pending

    def begin_request(
        self,
        correlation_id: str,
        url: str,
        method: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        timestamp: float = 0.0,
        config: Optional[FilterConfig] = None,
    ) -> bool:
        """Start tracking a request if it passes early filtering.

        Args:
            correlation_id: Event-channel request id
            url: Request URL
            method: HTTP method
            headers: Request headers
            body: Request body, if any
            timestamp: Request event timestamp
            config: Filter configuration (defaults to the store's)

        Returns:
            True if a pending record was created
        """
        config = config or self.config
        if not passes_early(url, method, config):
            self.stats.rejected_early += 1
            logger.debug(f"Request filtered out early: {method} {url}")
            return False

        if correlation_id in self._pending:
            # Redirects reuse the request id; the newest hop replaces the old one
            logger.debug(f"Replacing pending record for {correlation_id}")

        self._pending[correlation_id] = NetworkRecord(
            correlation_id=correlation_id,
            url=url,
            method=method,
            request_headers=headers or {},
            request_body=body,
            created_at=timestamp,
        )
        self.stats.accepted += 1
        logger.debug(f"Request pending: {method} {url}")
        return True

    def complete_response(
        self,
        correlation_id: str,
        status: int,
        headers: Optional[Dict[str, str]] = None,
        mime_type: Optional[str] = None,
        timestamp: float = 0.0,
        config: Optional[FilterConfig] = None,
    ) -> Tuple[bool, Optional[NetworkRecord]]:
        """Merge a response into its pending record and judge it.

        Args:
            correlation_id: Event-channel request id
            status: HTTP status code
            headers: Response headers
            mime_type: Response MIME type
            timestamp: Response event timestamp
            config: Filter configuration (defaults to the store's)

        Returns:
            (promoted, record) where record is the promoted record or None
        """
        if correlation_id not in self._pending:
            return False, None

        response = ResponseMeta(
            status=status,
            response_headers=headers or {},
            mime_type=mime_type,
            responded_at=timestamp,
        )
        record = self._pending.pop(correlation_id)
        record.apply_response(response)

        config = config or self.config

        if not passes_late(mime_type, config):
            record.discard()
            self.stats.rejected_late += 1
            logger.debug(f"Response filtered out late: {mime_type} {record.url}")
            return False, None

        self._promote(record)
        return True, record

    def _promote(self, record: NetworkRecord) -> None:
        if len(self._buffer) == self._capacity:
            evicted = self._buffer[0]
            self.stats.evicted += 1
            logger.debug(f"Evicting oldest record: {evicted.url}")
        self._buffer.append(record)
        self.stats.promoted += 1
        logger.debug(f"Record promoted: {record.method} {record.url}")

    def attach_body(self, body: str) -> bool:
        """Attach a fetched body to the newest promoted record without one.

        Body-fetch replies carry no correlation id, so the body goes to the
        most recently promoted record still lacking a body. Overlapping
        fetches can therefore mismatch bodies.

        Returns:
            True if a record received the body
        """
        for record in reversed(self._buffer):
            if not record.has_body:
                record.attach_body(body)
                self.stats.bodies_attached += 1
                return True
        logger.debug("Fetched body has no record waiting for it")
        return False

    def discard_pending(self, correlation_id: str) -> bool:
        """Drop a pending record whose load failed."""
        record = self._pending.pop(correlation_id, None)
        if record is None:
            return False
        record.discard()
        self.stats.failed_loads += 1
        logger.debug(f"Pending record dropped after failed load: {record.url}")
        return True

    def reconfigure(
        self,
        new_config: Optional[FilterConfig] = None,
        capacity: Optional[int] = None,
    ) -> int:
        """Clear all state and switch to a new configuration.

        Args:
            new_config: Filter configuration to apply from now on
            capacity: New buffer capacity (unchanged if None)

        Returns:
            Number of pending and buffered records removed
        """
        if capacity is not None:
            self._capacity = validate_capacity(capacity)
        removed = len(self._pending) + len(self._buffer)
        self._pending.clear()
        self._buffer = deque(maxlen=self._capacity)
        if new_config is not None:
            self.config = new_config
        logger.info(f"Correlation store reconfigured, removed {removed} records")
        return removed

    def snapshot(self) -> Tuple[NetworkRecord, ...]:
        """Point-in-time copy of the buffer, oldest first."""
        return tuple(record.model_copy() for record in self._buffer)

    def find(self, external_id: str) -> Optional[NetworkRecord]:
        """Look up a buffered record by its external id."""
        for record in self._buffer:
            if record.external_id == external_id:
                return record.model_copy()
        return None

    def get_stats(self) -> Dict[str, int]:
        stats = self.stats.export()
        stats["pending"] = len(self._pending)
        stats["buffered"] = len(self._buffer)
        return stats

    def __len__(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        return (
            f"CorrelationStore(buffered={len(self._buffer)}/{self._capacity}, "
            f"pending={len(self._pending)})"
        )
