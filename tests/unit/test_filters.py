"""Unit tests for the early and late capture filters."""

import logging

import pytest

from netmon.capture.filters import compile_pattern, matches_any, passes_early, passes_late
from netmon.models.capture import FilterConfig


class TestPassesEarly:
    """Tests for request-time filtering."""

    def test_default_config_accepts_everything(self):
        config = FilterConfig()
        assert passes_early("https://example.com/", "GET", config)
        assert passes_early("https://cdn.example.com/app.js", "OPTIONS", config)

    def test_method_filter_is_case_insensitive(self):
        config = FilterConfig(methods=["post"])
        assert passes_early("https://example.com/api", "POST", config)
        assert passes_early("https://example.com/api", "post", config)
        assert not passes_early("https://example.com/api", "GET", config)

    def test_include_patterns_use_search(self):
        config = FilterConfig(url_include_patterns=["/api/", r"graphql$"])
        assert passes_early("https://example.com/api/users", "GET", config)
        assert passes_early("https://example.com/graphql", "POST", config)
        assert not passes_early("https://example.com/index.html", "GET", config)

    def test_empty_include_list_matches_nothing(self):
        config = FilterConfig(url_include_patterns=[])
        assert not passes_early("https://example.com/api", "GET", config)

    def test_exclude_patterns_drop_matching_urls(self):
        config = FilterConfig(url_exclude_patterns=[r"/health", r"\.png$"])
        assert passes_early("https://example.com/api/users", "GET", config)
        assert not passes_early("https://example.com/health", "GET", config)
        assert not passes_early("https://example.com/logo.png", "GET", config)

    def test_exclude_applies_after_include(self):
        config = FilterConfig(
            url_include_patterns=["/api/"],
            url_exclude_patterns=["/api/internal"],
        )
        assert passes_early("https://example.com/api/public", "GET", config)
        assert not passes_early("https://example.com/api/internal/x", "GET", config)

    def test_invalid_pattern_contributes_no_match(self, caplog):
        config = FilterConfig(url_include_patterns=["[unclosed", "/ok"])
        with caplog.at_level(logging.WARNING):
            assert passes_early("https://example.com/ok", "GET", config)
            assert not passes_early("https://example.com/[unclosed", "GET", config)

    def test_only_invalid_patterns_reject(self):
        config = FilterConfig(url_include_patterns=["(bad"])
        assert not passes_early("https://example.com/(bad", "GET", config)


class TestPassesLate:
    """Tests for response-time content type filtering."""

    def test_default_content_types(self):
        config = FilterConfig()
        assert passes_late("application/json", config)
        assert passes_late("application/json; charset=utf-8", config)
        assert passes_late("multipart/form-data; boundary=abc", config)
        assert passes_late("text/plain", config)
        assert not passes_late("text/html", config)
        assert not passes_late("image/png", config)

    def test_all_accepts_even_without_mime_type(self):
        config = FilterConfig(content_types="all")
        assert passes_late("image/png", config)
        assert passes_late(None, config)
        assert passes_late("", config)

    def test_empty_list_rejects_everything(self):
        config = FilterConfig(content_types=[])
        assert not passes_late("application/json", config)
        assert not passes_late(None, config)

    def test_substring_match(self):
        config = FilterConfig(content_types=["json"])
        assert passes_late("application/vnd.api+json", config)
        assert passes_late("application/json", config)
        assert not passes_late("text/xml", config)

    def test_missing_mime_type_rejected_for_explicit_set(self):
        config = FilterConfig(content_types=["application/json"])
        assert not passes_late(None, config)
        assert not passes_late("", config)


class TestPatternHelpers:
    """Tests for pattern compilation helpers."""

    def test_compile_pattern_caches(self):
        assert compile_pattern(r"/api/\d+") is compile_pattern(r"/api/\d+")

    def test_compile_pattern_invalid_returns_none(self):
        assert compile_pattern("*invalid") is None

    @pytest.mark.parametrize("url,expected", [
        ("https://example.com/api/1", True),
        ("https://example.com/static/1", False),
    ])
    def test_matches_any(self, url, expected):
        assert matches_any(url, ["/api/", "?invalid"]) is expected
