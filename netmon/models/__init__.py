"""Capture data models package."""

from .capture import (
    ALL_KEYWORD,
    DEFAULT_CONTENT_TYPES,
    FilterConfig,
    InvalidTransition,
    NetworkRecord,
    RecordState,
    ResponseMeta,
    Selection,
    SelectionKind,
    is_valid_external_id,
    new_external_id,
)

__all__ = [
    'ALL_KEYWORD',
    'DEFAULT_CONTENT_TYPES',
    'FilterConfig',
    'InvalidTransition',
    'NetworkRecord',
    'RecordState',
    'ResponseMeta',
    'Selection',
    'SelectionKind',
    'is_valid_external_id',
    'new_external_id',
]
