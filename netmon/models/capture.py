"""Pydantic models for captured network exchanges and capture filters.

This module defines the data model shared by the capture pipeline: the
NetworkRecord built from correlated DevTools events, its per-record state
machine, and the FilterConfig that decides which exchanges are retained.
"""

import uuid
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ALL_KEYWORD = "all"

# Default content types for API monitoring (JSON, form data, plain text)
DEFAULT_CONTENT_TYPES: Tuple[str, ...] = (
    "application/json",
    "application/x-www-form-urlencoded",
    "multipart/form-data",
    "text/plain",
)


class InvalidTransition(ValueError):
    """Raised when a record is moved to a state its lifecycle does not allow."""

    def __init__(self, current: "RecordState", target: "RecordState"):
        super().__init__(f"Cannot move record from {current.value} to {target.value}")
        self.current = current
        self.target = target


class RecordState(str, Enum):
    """Lifecycle of one observed exchange."""
    CREATED = "created"
    RESPONDED = "responded"
    BODY_ATTACHED = "body_attached"
    DISCARDED = "discarded"


_TRANSITIONS: Dict[RecordState, FrozenSet[RecordState]] = {
    RecordState.CREATED: frozenset({RecordState.RESPONDED, RecordState.DISCARDED}),
    RecordState.RESPONDED: frozenset({RecordState.BODY_ATTACHED, RecordState.DISCARDED}),
}


class SelectionKind(str, Enum):
    """Tag for the three shapes a filter selection can take."""
    ALL = "all"
    SOME = "some"
    NONE = "none"


class Selection(BaseModel):
    """Tri-state filter value: everything, an explicit set, or nothing."""

    model_config = ConfigDict(frozen=True)

    kind: SelectionKind = Field(description="Which shape the selection has")
    values: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Selected values (only meaningful for SOME)"
    )

    @model_validator(mode="after")
    def check_shape(self):
        if self.kind == SelectionKind.SOME and not self.values:
            raise ValueError("A SOME selection needs at least one value")
        if self.kind != SelectionKind.SOME and self.values:
            raise ValueError(f"A {self.kind.value} selection carries no values")
        return self

    @classmethod
    def everything(cls) -> "Selection":
        return cls(kind=SelectionKind.ALL)

    @classmethod
    def nothing(cls) -> "Selection":
        return cls(kind=SelectionKind.NONE)

    @classmethod
    def of(cls, values: Iterable[str]) -> "Selection":
        """Build a selection from explicit values; no values means nothing."""
        chosen = frozenset(values)
        if not chosen:
            return cls.nothing()
        return cls(kind=SelectionKind.SOME, values=chosen)

    @classmethod
    def parse(cls, raw: Any) -> "Selection":
        """Parse the wire shape: ``"all"``, a list of strings, or a Selection."""
        if isinstance(raw, Selection):
            return raw
        if isinstance(raw, str):
            if raw.strip().lower() == ALL_KEYWORD:
                return cls.everything()
            raise ValueError(f"Expected '{ALL_KEYWORD}' or a list of strings, got {raw!r}")
        if isinstance(raw, dict):
            return cls.model_validate(raw)
        if isinstance(raw, (list, tuple, set, frozenset)):
            items = list(raw)
            bad = [item for item in items if not isinstance(item, str)]
            if bad:
                raise ValueError(f"Selection entries must be strings, got {bad!r}")
            return cls.of(items)
        raise ValueError(f"Unsupported selection value: {raw!r}")

    @property
    def is_all(self) -> bool:
        return self.kind == SelectionKind.ALL

    @property
    def is_none(self) -> bool:
        return self.kind == SelectionKind.NONE

    def to_public(self) -> Union[str, List[str]]:
        """Render back into the wire shape."""
        if self.is_all:
            return ALL_KEYWORD
        return sorted(self.values)


class FilterConfig(BaseModel):
    """Inclusion policy applied to observed exchanges.

    ``content_types`` and ``url_include_patterns`` accept ``"all"``, an empty
    list (select nothing) or a list of values. ``methods`` left unset means
    every method is accepted.
    """

    model_config = ConfigDict(frozen=True)

    content_types: Selection = Field(
        default_factory=lambda: Selection.of(DEFAULT_CONTENT_TYPES),
        description="Response content types to keep (substring match)"
    )
    url_include_patterns: Selection = Field(
        default_factory=Selection.everything,
        description="Regex patterns a request URL must match"
    )
    url_exclude_patterns: Tuple[str, ...] = Field(
        default=(),
        description="Regex patterns that drop a request URL"
    )
    methods: Optional[FrozenSet[str]] = Field(
        default=None,
        description="HTTP methods to keep; unset keeps every method"
    )

    @field_validator("content_types", mode="before")
    @classmethod
    def parse_content_types(cls, v):
        if v is None:
            return Selection.of(DEFAULT_CONTENT_TYPES)
        return Selection.parse(v)

    @field_validator("url_include_patterns", mode="before")
    @classmethod
    def parse_include_patterns(cls, v):
        if v is None:
            return Selection.everything()
        return Selection.parse(v)

    @field_validator("url_exclude_patterns", mode="before")
    @classmethod
    def parse_exclude_patterns(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,)
        return v

    @field_validator("methods", mode="before")
    @classmethod
    def normalize_methods(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        bad = [m for m in v if not isinstance(m, str)]
        if bad:
            raise ValueError(f"Methods must be strings, got {bad!r}")
        methods = frozenset(m.strip().upper() for m in v if m.strip())
        return methods or None

    def to_public(self) -> Dict[str, Any]:
        """Wire representation used in tool results."""
        return {
            "content_types": self.content_types.to_public(),
            "url_include_patterns": self.url_include_patterns.to_public(),
            "url_exclude_patterns": list(self.url_exclude_patterns),
            "methods": sorted(self.methods) if self.methods else None,
        }


class ResponseMeta(BaseModel):
    """Response metadata merged into a record in one step."""

    model_config = ConfigDict(frozen=True)

    status: int = Field(description="HTTP status code")
    response_headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Response headers"
    )
    mime_type: Optional[str] = Field(
        default=None,
        description="Response MIME type as reported by the browser"
    )
    responded_at: float = Field(description="Response event timestamp")


def new_external_id() -> str:
    """Generate a caller-facing record id."""
    return str(uuid.uuid4())


def is_valid_external_id(value: Any) -> bool:
    """Check whether a value has the shape of an id from new_external_id()."""
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


class NetworkRecord(BaseModel):
    """One observed HTTP exchange, built up from correlated events."""

    model_config = ConfigDict(validate_assignment=True)

    # Identification
    correlation_id: str = Field(frozen=True, description="Event-channel request id")
    external_id: str = Field(
        default_factory=new_external_id,
        frozen=True,
        description="Caller-facing identifier"
    )

    # Request data
    url: str = Field(frozen=True, description="Request URL")
    method: str = Field(frozen=True, description="HTTP method")
    request_headers: Dict[str, str] = Field(
        default_factory=dict,
        frozen=True,
        description="Request headers"
    )
    request_body: Optional[str] = Field(
        default=None,
        frozen=True,
        description="Request body (if any)"
    )
    created_at: float = Field(frozen=True, description="Request event timestamp")

    # Response data
    response: Optional[ResponseMeta] = Field(
        default=None,
        description="Response metadata, set once"
    )
    response_body: Optional[str] = Field(
        default=None,
        description="Response body, set once after an explicit fetch"
    )

    state: RecordState = Field(
        default=RecordState.CREATED,
        description="Lifecycle state"
    )

    def _advance(self, target: RecordState) -> None:
        if target not in _TRANSITIONS.get(self.state, frozenset()):
            raise InvalidTransition(self.state, target)
        self.state = target

    def apply_response(self, response: ResponseMeta) -> None:
        """Merge response metadata (CREATED -> RESPONDED)."""
        self._advance(RecordState.RESPONDED)
        self.response = response

    def attach_body(self, body: str) -> None:
        """Attach a fetched response body (RESPONDED -> BODY_ATTACHED)."""
        self._advance(RecordState.BODY_ATTACHED)
        self.response_body = body

    def discard(self) -> None:
        """Mark the record as dropped by filtering or a failed load."""
        self._advance(RecordState.DISCARDED)

    @property
    def mime_type(self) -> Optional[str]:
        return self.response.mime_type if self.response else None

    @property
    def has_body(self) -> bool:
        return self.response_body is not None

    @property
    def host(self) -> str:
        """Extract host from URL."""
        return urlparse(self.url).netloc
