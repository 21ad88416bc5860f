"""Tool argument schemas.

This module defines Pydantic models for the arguments of each tool exposed
by the dispatcher. The models double as the JSON schemas advertised to
clients through ``ToolDispatcher.list_tools``.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..capture.browser_factory import DEFAULT_CDP_PORT
from ..capture.query import BodyMode
from ..capture.store import DEFAULT_BUFFER_SIZE, MAX_BUFFER_SIZE


class ToolArgs(BaseModel):
    """Base for tool arguments; unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")


class StartArgs(ToolArgs):
    """Arguments for starting a monitoring session."""

    max_buffer_size: Optional[int] = Field(
        default=None,
        ge=1,
        le=MAX_BUFFER_SIZE,
        description=f"Number of captured requests to keep, oldest evicted first (configured default, normally {DEFAULT_BUFFER_SIZE})"
    )

    filter: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Capture filter: content_types, url_include_patterns, url_exclude_patterns, methods",
        examples=[{
            "content_types": ["application/json"],
            "url_include_patterns": ["/api/"],
            "methods": ["GET", "POST"]
        }]
    )

    cdp_port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        description=f"Remote debugging port of the browser (configured default, normally {DEFAULT_CDP_PORT})"
    )


class UpdateFilterArgs(ToolArgs):
    """Arguments for replacing the active capture filter."""

    filter: Dict[str, Any] = Field(
        ...,
        description="New capture filter; captured requests are cleared"
    )


class ListRecentArgs(ToolArgs):
    """Arguments for listing captured requests, newest first."""

    count: int = Field(
        default=10,
        ge=0,
        le=MAX_BUFFER_SIZE,
        description="Maximum number of requests to return"
    )

    include_headers: bool = Field(
        default=False,
        description="Include request and response headers"
    )

    body_mode: BodyMode = Field(
        default=BodyMode.PREVIEW,
        description="preview (first 512 bytes), full, or omit"
    )

    methods: Optional[List[str]] = Field(
        default=None,
        description="Only return requests with these HTTP methods"
    )

    url_pattern: Optional[str] = Field(
        default=None,
        min_length=1,
        description="Only return requests whose URL matches this regex"
    )

    content_types: Optional[List[str]] = Field(
        default=None,
        description="Only return responses whose content type contains one of these"
    )

    @field_validator('methods')
    @classmethod
    def upper_methods(cls, v):
        if v is None:
            return v
        return [m.upper() for m in v]


class GetDetailArgs(ToolArgs):
    """Arguments for fetching one captured request."""

    external_id: str = Field(
        ...,
        min_length=1,
        description="Request id as returned by list_recent"
    )

    include_headers: bool = Field(
        default=False,
        description="Include request and response headers"
    )


class NoArgs(ToolArgs):
    """Tools that take no arguments."""
    pass
