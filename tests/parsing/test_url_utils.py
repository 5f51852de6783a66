"""Unit tests for URL canonicalization and validation."""

from __future__ import annotations

import pytest

from sitecrawl.parsing.url_utils import (
    InvalidUrlError,
    dedupe_key,
    get_origin,
    host_of,
    is_http_url,
    is_same_origin,
    normalize_url,
    resolve_url,
    should_skip_url,
)


# =============================================================================
# normalize_url Tests
# =============================================================================


class TestNormalizeUrl:
    """Tests for normalize_url."""

    def test_lowercases_scheme_and_host(self) -> None:
        assert normalize_url("HTTPS://Example.COM/Docs") == "https://example.com/Docs"

    def test_strips_fragment(self) -> None:
        assert normalize_url("https://example.com/page#section") == "https://example.com/page"

    def test_drops_default_ports(self) -> None:
        assert normalize_url("http://example.com:80/a") == "http://example.com/a"
        assert normalize_url("https://example.com:443/a") == "https://example.com/a"

    def test_keeps_non_default_port(self) -> None:
        assert normalize_url("https://example.com:8443/a") == "https://example.com:8443/a"

    def test_empty_path_becomes_root(self) -> None:
        assert normalize_url("https://example.com") == "https://example.com/"

    def test_root_path_preserved(self) -> None:
        assert normalize_url("https://example.com/") == "https://example.com/"

    def test_strips_trailing_slash(self) -> None:
        assert normalize_url("https://example.com/docs/") == "https://example.com/docs"

    def test_strips_repeated_trailing_slashes(self) -> None:
        assert normalize_url("https://example.com/a//") == "https://example.com/a"

    def test_removes_tracking_params(self) -> None:
        url = (
            "https://example.com/p?utm_source=x&UTM_Medium=y&fbclid=1&gclid=2"
            "&dclid=3&msclkid=4&mc_cid=5&mc_eid=6&id=7"
        )
        assert normalize_url(url) == "https://example.com/p?id=7"

    def test_keeps_params_that_only_resemble_tracking(self) -> None:
        assert normalize_url("https://example.com/p?fbclid_x=1") == "https://example.com/p?fbclid_x=1"

    def test_sorts_query_params(self) -> None:
        assert normalize_url("https://example.com/p?b=2&a=1&c=3") == "https://example.com/p?a=1&b=2&c=3"

    def test_sort_is_stable_for_repeated_keys(self) -> None:
        assert normalize_url("https://example.com/p?b=2&a=1&b=1") == "https://example.com/p?a=1&b=2&b=1"

    def test_query_only_tracking_params_removed_entirely(self) -> None:
        assert normalize_url("https://example.com/p?utm_source=x") == "https://example.com/p"

    def test_blank_values_kept(self) -> None:
        assert normalize_url("https://example.com/p?flag=") == "https://example.com/p?flag="

    @pytest.mark.parametrize(
        "url",
        [
            "not a url",
            "/relative/path",
            "https://",
            "https://example.com:notaport/",
            "",
        ],
    )
    def test_invalid_urls_raise(self, url: str) -> None:
        with pytest.raises(InvalidUrlError):
            normalize_url(url)

    def test_invalid_url_error_is_value_error(self) -> None:
        assert issubclass(InvalidUrlError, ValueError)

    @pytest.mark.parametrize(
        "url",
        [
            "HTTPS://Example.com:443/docs/?utm_source=x&b=2&a=1#top",
            "https://example.com/a//",
            "https://example.com",
            "http://example.com:8080/x/y/?q=a+b&q=%20c",
            "https://example.com/p?flag&z=1",
            "https://user:pw@Example.com/path/",
            "http://[::1]:8000/a/",
        ],
    )
    def test_idempotent(self, url: str) -> None:
        """Normalizing twice yields the same result as normalizing once."""
        once = normalize_url(url)
        assert normalize_url(once) == once


class TestDedupeKey:
    """Tests for dedupe_key."""

    def test_normalizes_valid_url(self) -> None:
        assert dedupe_key("https://Example.com/a/#x") == "https://example.com/a"

    def test_falls_back_to_fragment_stripped_input(self) -> None:
        assert dedupe_key("not a url#frag") == "not a url"


# =============================================================================
# Predicates and helpers
# =============================================================================


class TestIsHttpUrl:
    """Tests for is_http_url."""

    def test_accepts_http_and_https(self) -> None:
        assert is_http_url("http://example.com/")
        assert is_http_url("https://example.com/")

    @pytest.mark.parametrize(
        "url",
        ["mailto:someone@example.com", "ftp://example.com/file", "javascript:void(0)", "garbage", ""],
    )
    def test_rejects_others_without_raising(self, url: str) -> None:
        assert is_http_url(url) is False


class TestOrigins:
    """Tests for get_origin, host_of and is_same_origin."""

    def test_get_origin_drops_default_port(self) -> None:
        assert get_origin("https://Example.com:443/a?b=1") == "https://example.com"

    def test_get_origin_keeps_custom_port(self) -> None:
        assert get_origin("http://example.com:8080/a") == "http://example.com:8080"

    def test_get_origin_excludes_userinfo(self) -> None:
        assert get_origin("https://user:pw@example.com/") == "https://example.com"

    def test_host_of(self) -> None:
        assert host_of("https://docs.example.com/a") == "docs.example.com"
        assert host_of("http://example.com:8080/a") == "example.com:8080"

    def test_same_origin(self) -> None:
        assert is_same_origin("https://example.com/docs", "https://example.com")
        assert is_same_origin("https://example.com", "https://example.com")
        assert is_same_origin("https://example.com?x=1", "https://example.com")

    def test_lookalike_host_is_not_same_origin(self) -> None:
        assert not is_same_origin("https://example.com.evil.net/", "https://example.com")
        assert not is_same_origin("https://example.community/", "https://example.com")

    def test_different_scheme_is_not_same_origin(self) -> None:
        assert not is_same_origin("http://example.com/", "https://example.com")


class TestResolveUrl:
    """Tests for resolve_url."""

    def test_resolves_relative_path(self) -> None:
        assert resolve_url("https://example.com/docs/guide", "intro") == "https://example.com/docs/intro"

    def test_drops_fragment(self) -> None:
        assert resolve_url("https://example.com/docs/guide", "../api/#top") == "https://example.com/api/"

    def test_absolute_href_wins(self) -> None:
        assert resolve_url("https://example.com/", "https://other.org/x") == "https://other.org/x"


class TestShouldSkipUrl:
    """Tests for should_skip_url."""

    @pytest.mark.parametrize(
        "href",
        ["", "   ", "#top", "mailto:a@b.c", "javascript:void(0)", "tel:+1555", "/logo.PNG", "/app.js"],
    )
    def test_skipped(self, href: str) -> None:
        skip, reason = should_skip_url(href)
        assert skip is True
        assert reason

    def test_regular_page_not_skipped(self) -> None:
        assert should_skip_url("/docs/guide") == (False, "")
