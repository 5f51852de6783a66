"""Unit tests for link extraction."""

from __future__ import annotations

from sitecrawl.parsing.link_extractor import (
    ExtractedLink,
    LinkExtractor,
    extract_links,
    extract_same_origin_urls,
)


# =============================================================================
# ExtractedLink Tests
# =============================================================================


class TestExtractedLink:
    """Tests for ExtractedLink dataclass."""

    def test_is_nofollow_true(self) -> None:
        """Link with nofollow should report is_nofollow=True."""
        link = ExtractedLink(url="https://example.com/", rel="external NoFollow noopener")
        assert link.is_nofollow is True

    def test_is_nofollow_false(self) -> None:
        """Link without nofollow should report is_nofollow=False."""
        link = ExtractedLink(url="https://example.com/", rel="external")
        assert link.is_nofollow is False


# =============================================================================
# LinkExtractor Tests
# =============================================================================


class TestLinkExtractor:
    """Tests for the HTML link parser."""

    def test_resolves_relative_links(self) -> None:
        links = extract_links('<a href="guide">Guide</a>', "https://example.com/docs/")
        assert [link.url for link in links] == ["https://example.com/docs/guide"]

    def test_collects_anchor_text_and_rel(self) -> None:
        html = '<a href="/a" rel="nofollow">  Read <b>more</b>\n here </a>'
        link = extract_links(html, "https://example.com/")[0]
        assert link.anchor_text == "Read more here"
        assert link.is_nofollow
        assert link.tag == "a"

    def test_area_links(self) -> None:
        html = '<map><area href="/region" alt="Region"></map>'
        links = extract_links(html, "https://example.com/")
        assert links[0].url == "https://example.com/region"
        assert links[0].tag == "area"

    def test_base_href_changes_resolution(self) -> None:
        html = '<head><base href="https://example.com/v2/"></head><a href="intro">Intro</a>'
        links = extract_links(html, "https://example.com/docs/page")
        assert links[0].url == "https://example.com/v2/intro"

    def test_drops_fragments_and_duplicates(self) -> None:
        html = '<a href="/a#one">1</a><a href="/a#two">2</a><a href="/b">3</a><a href="/a">4</a>'
        links = extract_links(html, "https://example.com/")
        assert [link.url for link in links] == ["https://example.com/a", "https://example.com/b"]

    def test_skips_non_http_and_assets(self) -> None:
        html = (
            '<a href="mailto:a@b.c">m</a><a href="javascript:void(0)">j</a>'
            '<a href="#top">t</a><a href="/img/logo.png">i</a><a href="/page">p</a>'
            '<a href="ftp://example.com/f">f</a>'
        )
        links = extract_links(html, "https://example.com/")
        assert [link.url for link in links] == ["https://example.com/page"]

    def test_anchor_without_href_ignored(self) -> None:
        links = extract_links('<a name="x">Anchor</a><a href="/y">Y</a>', "https://example.com/")
        assert [link.url for link in links] == ["https://example.com/y"]

    def test_unterminated_anchor_still_counts(self) -> None:
        links = extract_links('<p><a href="/dangling">text', "https://example.com/")
        assert [link.url for link in links] == ["https://example.com/dangling"]

    def test_get_links_returns_copy(self) -> None:
        extractor = LinkExtractor("https://example.com/")
        extractor.feed('<a href="/a">A</a>')
        extractor.close()
        extractor.get_links().clear()
        assert len(extractor.get_links()) == 1


class TestExtractSameOriginUrls:
    """Tests for same-origin filtering."""

    def test_keeps_only_same_origin(self) -> None:
        html = (
            '<a href="/a">a</a>'
            '<a href="https://example.com/b">b</a>'
            '<a href="https://other.org/c">c</a>'
            '<a href="https://example.com.evil.net/d">d</a>'
            '<a href="http://example.com/e">e</a>'
        )
        urls = extract_same_origin_urls(html, "https://example.com/", "https://example.com")
        assert urls == ["https://example.com/a", "https://example.com/b"]
