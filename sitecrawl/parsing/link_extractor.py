"""Link extraction from HTML content.

This module extracts and normalizes the links of a page so the crawler can
grow its frontier.

Features:
- Extract links from <a href> and <area href> elements
- Honor <base href> when resolving relative URLs
- Filter out non-HTTP URLs (javascript:, mailto:, etc.) and binary assets
- Drop fragments and duplicates while keeping document order
- Track link context (anchor text, rel attributes)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import List, Set

from .url_utils import is_http_url, is_same_origin, resolve_url, should_skip_url

logger = logging.getLogger(__name__)


@dataclass
class ExtractedLink:
    """Represents a link extracted from HTML content.

    Attributes:
        url: The absolute, fragment-free URL
        anchor_text: The text content of the link (if available)
        rel: The rel attribute value (e.g., "nofollow")
        tag: The HTML tag the link came from ("a" or "area")
    """
    url: str
    anchor_text: str = ""
    rel: str = ""
    tag: str = "a"

    @property
    def is_nofollow(self) -> bool:
        """Check if the link has rel="nofollow"."""
        return "nofollow" in self.rel.lower()


class LinkExtractor(HTMLParser):
    """HTML parser that collects page links.

    Usage:
        extractor = LinkExtractor("https://example.com/page")
        extractor.feed(html_content)
        links = extractor.get_links()
    """

    def __init__(self, base_url: str):
        """Initialize the link extractor.

        Args:
            base_url: The URL of the page being parsed (for resolving relative URLs)
        """
        super().__init__(convert_charrefs=True)
        self.base_url = base_url
        self._links: List[ExtractedLink] = []
        self._seen_urls: Set[str] = set()
        self._anchor_text: List[str] = []
        self._anchor_href: str | None = None
        self._anchor_rel = ""

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        attrs_dict = {key: value or "" for key, value in attrs}
        href = attrs_dict.get("href", "").strip()

        if tag == "base" and href:
            self.base_url = resolve_url(self.base_url, href)
        elif tag == "a" and href:
            self._anchor_href = href
            self._anchor_rel = attrs_dict.get("rel", "")
            self._anchor_text = []
        elif tag == "area" and href:
            self._add_link(href, tag="area", rel=attrs_dict.get("rel", ""))

    def handle_endtag(self, tag: str) -> None:
        if tag == "a" and self._anchor_href is not None:
            self._add_link(
                self._anchor_href,
                anchor_text=" ".join("".join(self._anchor_text).split()),
                rel=self._anchor_rel,
            )
            self._anchor_href = None
            self._anchor_rel = ""
            self._anchor_text = []

    def handle_data(self, data: str) -> None:
        if self._anchor_href is not None:
            self._anchor_text.append(data)

    def close(self) -> None:
        super().close()
        # An unterminated <a> still counts as a link
        if self._anchor_href is not None:
            self.handle_endtag("a")

    def _add_link(self, href: str, anchor_text: str = "", tag: str = "a", rel: str = "") -> None:
        skip, reason = should_skip_url(href)
        if skip:
            return

        try:
            absolute_url = resolve_url(self.base_url, href)
        except ValueError:
            return

        if not is_http_url(absolute_url) or absolute_url in self._seen_urls:
            return

        self._seen_urls.add(absolute_url)
        self._links.append(ExtractedLink(
            url=absolute_url,
            anchor_text=anchor_text,
            rel=rel,
            tag=tag,
        ))

    def get_links(self) -> List[ExtractedLink]:
        """Get all extracted links in document order."""
        return self._links.copy()


def extract_links(html: str, base_url: str) -> List[ExtractedLink]:
    """Extract all links from HTML content.

    Args:
        html: The HTML content to parse
        base_url: The URL of the page (for resolving relative URLs)

    Returns:
        List of ExtractedLink objects

    Example:
        >>> html = '<html><body><a href="/page#x">Link</a></body></html>'
        >>> extract_links(html, "https://example.com/")[0].url
        'https://example.com/page'
    """
    extractor = LinkExtractor(base_url)
    extractor.feed(html)
    extractor.close()
    return extractor.get_links()


def extract_same_origin_urls(html: str, base_url: str, origin: str) -> List[str]:
    """Extract the URLs of links that stay on ``origin``."""
    return [
        link.url
        for link in extract_links(html, base_url)
        if is_same_origin(link.url, origin)
    ]
