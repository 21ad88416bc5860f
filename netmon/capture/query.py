"""Read-side queries over retained network records.

Queries work on a snapshot of the buffer and project each record into a new
dictionary, optionally dropping headers and truncating bodies. Sizes are
counted in UTF-8 bytes.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ConfigurationError
from .filters import compile_pattern
from ..models.capture import NetworkRecord, is_valid_external_id

logger = logging.getLogger(__name__)

PREVIEW_BYTES = 512
DETAIL_CAP_BYTES = 50 * 1024
TRUNCATION_MARKER = "...[truncated from {size} bytes]"


class BodyMode(str, Enum):
    """How bodies appear in projected records."""
    PREVIEW = "preview"
    FULL = "full"
    OMIT = "omit"


@dataclass(frozen=True)
class Projection:
    """Shape of projected records."""
    include_headers: bool = False
    body_mode: BodyMode = BodyMode.PREVIEW
    preview_bytes: int = PREVIEW_BYTES
    cap_bytes: Optional[int] = None


@dataclass(frozen=True)
class NotFound:
    """Lookup miss for an external id."""
    external_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"error": "NotFound", "external_id": self.external_id}


@dataclass(frozen=True)
class RecordQuery:
    """Optional narrowing applied before records are listed."""
    methods: Optional[FrozenSet[str]] = None
    url_pattern: Optional[str] = None
    content_types: Optional[Tuple[str, ...]] = None

    def matches(self, record: NetworkRecord) -> bool:
        if self.methods and record.method.upper() not in self.methods:
            return False

        if self.url_pattern:
            compiled = compile_pattern(self.url_pattern)
            if compiled is None or not compiled.search(record.url):
                return False

        if self.content_types:
            mime_type = record.mime_type
            if not mime_type or not any(ct in mime_type for ct in self.content_types):
                return False

        return True


def byte_size(text: str) -> int:
    return len(text.encode("utf-8"))


def truncate_bytes(text: str, limit: int) -> str:
    """Cut text to at most ``limit`` UTF-8 bytes without splitting a character."""
    return text.encode("utf-8")[:limit].decode("utf-8", errors="ignore")


def cap_body(text: str, limit: int) -> Tuple[str, int, bool]:
    """Cap a body and append the truncation marker when it overflows.

    Returns:
        (body, original_size, truncated)
    """
    size = byte_size(text)
    if size <= limit:
        return text, size, False
    return truncate_bytes(text, limit) + TRUNCATION_MARKER.format(size=size), size, True


def _body_fields(key: str, body: Optional[str], projection: Projection) -> Dict[str, Any]:
    if projection.body_mode == BodyMode.OMIT:
        return {}
    if body is None:
        return {key: None}

    if projection.body_mode == BodyMode.PREVIEW:
        return {
            key: truncate_bytes(body, projection.preview_bytes),
            f"{key}_size": byte_size(body),
        }

    if projection.cap_bytes is not None:
        text, size, truncated = cap_body(body, projection.cap_bytes)
        return {key: text, f"{key}_size": size, f"{key}_truncated": truncated}
    return {key: body, f"{key}_size": byte_size(body)}


def project(record: NetworkRecord, projection: Projection) -> Dict[str, Any]:
    """Build the caller-facing view of a record."""
    view: Dict[str, Any] = {
        "id": record.external_id,
        "url": record.url,
        "method": record.method,
        "timestamp": record.created_at,
        "state": record.state.value,
    }
    if projection.include_headers:
        view["request_headers"] = dict(record.request_headers)
    view.update(_body_fields("request_body", record.request_body, projection))

    if record.response is None:
        view["response"] = None
        return view

    response: Dict[str, Any] = {
        "status": record.response.status,
        "mime_type": record.response.mime_type,
        "timestamp": record.response.responded_at,
    }
    if projection.include_headers:
        response["headers"] = dict(record.response.response_headers)
    response.update(_body_fields("body", record.response_body, projection))
    view["response"] = response
    return view


def list_recent(
    records: Sequence[NetworkRecord],
    count: int = 10,
    projection: Optional[Projection] = None,
    query: Optional[RecordQuery] = None,
) -> Dict[str, Any]:
    """List the newest records first.

    Args:
        records: Buffer snapshot, oldest first
        count: Maximum number of records to return
        projection: Output shape (headers off, 512-byte previews by default)
        query: Optional narrowing by method, URL pattern or content type

    Returns:
        Dictionary with total_captured, showing and records
    """
    if count < 0:
        raise ConfigurationError(f"Count must not be negative, got {count}")
    projection = projection or Projection()

    candidates: Iterable[NetworkRecord] = records
    if query is not None:
        candidates = [r for r in records if query.matches(r)]

    # Stable sort: equal timestamps keep buffer order
    ordered = sorted(candidates, key=lambda r: r.created_at, reverse=True)
    selected: List[Dict[str, Any]] = [project(r, projection) for r in ordered[:count]]

    return {
        "total_captured": len(records),
        "showing": len(selected),
        "records": selected,
    }


def get_detail(
    records: Sequence[NetworkRecord],
    external_id: str,
    include_headers: bool = False,
    cap_bytes: int = DETAIL_CAP_BYTES,
) -> Union[Dict[str, Any], NotFound]:
    """Return one record with bodies capped at ``cap_bytes``.

    Raises:
        ConfigurationError: If the id is not a valid record id
    """
    if not is_valid_external_id(external_id):
        raise ConfigurationError(f"Invalid record id: {external_id!r}")

    for record in records:
        if record.external_id == external_id:
            projection = Projection(
                include_headers=include_headers,
                body_mode=BodyMode.FULL,
                cap_bytes=cap_bytes,
            )
            return project(record, projection)

    logger.debug(f"Record not found: {external_id}")
    return NotFound(external_id=external_id)
