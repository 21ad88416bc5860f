"""Two-stage inclusion filters for observed network exchanges.

The early stage runs when a request is sent and only sees the URL and
method. The late stage runs once the response arrives and judges the
content type. Both are pure functions of their inputs and a FilterConfig.
"""

import logging
import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern

from ..models.capture import FilterConfig

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> Optional[Pattern[str]]:
    """Compile a URL pattern, returning None (and warning once) if invalid."""
    try:
        return re.compile(pattern)
    except re.error as e:
        logger.warning(f"Ignoring invalid URL pattern '{pattern}': {e}")
        return None


def matches_any(url: str, patterns: Iterable[str]) -> bool:
    """True if any valid pattern is found in the URL."""
    for pattern in patterns:
        compiled = compile_pattern(pattern)
        if compiled is not None and compiled.search(url):
            return True
    return False


def passes_early(url: str, method: str, config: FilterConfig) -> bool:
    """Decide with request-time information whether to track an exchange.

    Args:
        url: Request URL
        method: HTTP method
        config: Active filter configuration

    Returns:
        True if the request should enter the pending set
    """
    if config.methods is not None and (method or "").upper() not in config.methods:
        return False

    include = config.url_include_patterns
    if not include.is_all and not matches_any(url, include.values):
        return False

    if config.url_exclude_patterns and matches_any(url, config.url_exclude_patterns):
        return False

    return True


def passes_late(mime_type: Optional[str], config: FilterConfig) -> bool:
    """Decide from the response content type whether to retain an exchange.

    Content types match by substring so that values carrying charset or
    boundary parameters still match the bare type.
    """
    content_types = config.content_types
    if content_types.is_all:
        return True
    if content_types.is_none or not mime_type:
        return False
    return any(value in mime_type for value in content_types.values)
