"""HTML to clean markdown extraction using trafilatura and BeautifulSoup.

A single pass over the page produces everything the crawler needs:
the title, same-origin links, structured metadata (canonical URL,
OpenGraph, Twitter cards, JSON-LD) and a markdown rendition of the
content with navigation chrome and hidden elements removed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

import trafilatura
from bs4 import BeautifulSoup, Tag

from .link_extractor import extract_same_origin_urls
from .url_utils import InvalidUrlError, get_origin, resolve_url

logger = logging.getLogger(__name__)

_NOISE_SELECTORS = (
    "script", "style", "svg", "noscript", "template",
    "nav", "footer", "header",
    ".advertisement", ".ad", "[class*=social]",
)

_HIDDEN_CLASS_PATTERNS = ("--hide", "visually-hidden", "sr-only")

_BLOCK_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6", "p", "li", "pre", "blockquote", "td", "th")


@dataclass
class ExtractedContent:
    """Everything extracted from one HTML document."""

    title: str = ""
    links: List[str] = field(default_factory=list)
    markdown: str = ""
    structured: Dict[str, Any] = field(default_factory=dict)


def _extract_title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    for attrs in ({"property": "og:title"}, {"name": "twitter:title"}):
        meta = soup.find("meta", attrs=attrs)
        if isinstance(meta, Tag) and meta.get("content"):
            return str(meta["content"]).strip()
    heading = soup.find("h1")
    if heading:
        return heading.get_text(" ", strip=True)
    return ""


def _extract_structured(soup: BeautifulSoup, base_url: str) -> Dict[str, Any]:
    structured: Dict[str, Any] = {}

    canonical = soup.find("link", rel="canonical")
    if isinstance(canonical, Tag) and canonical.get("href"):
        structured["canonical_url"] = resolve_url(base_url, str(canonical["href"]))

    open_graph: Dict[str, str] = {}
    twitter: Dict[str, str] = {}
    for meta in soup.find_all("meta"):
        key = meta.get("property") or meta.get("name") or ""
        content = meta.get("content")
        if content is None:
            continue
        if key.startswith("og:"):
            open_graph[key] = content
        elif key.startswith("twitter:"):
            twitter[key] = content
        elif key == "description":
            structured["description"] = content
    if open_graph:
        structured["open_graph"] = open_graph
    if twitter:
        structured["twitter"] = twitter

    json_ld: List[Any] = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            json_ld.append(json.loads(raw))
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block on %s", base_url)
    if json_ld:
        structured["json_ld"] = json_ld

    html_tag = soup.find("html")
    if isinstance(html_tag, Tag) and html_tag.get("lang"):
        structured["lang"] = html_tag["lang"]

    return structured


def _drop(elements) -> None:
    for element in elements:
        # Children of an already removed element are gone with it
        if getattr(element, "decomposed", False):
            continue
        element.decompose()


def _remove_noise(soup: BeautifulSoup) -> None:
    for selector in _NOISE_SELECTORS:
        _drop(soup.select(selector))

    # Elements hidden from readers should not be extracted
    _drop(soup.find_all(attrs={"aria-hidden": "true"}))
    _drop(soup.find_all(style=re.compile(r"display:\s*none|visibility:\s*hidden")))
    _drop(soup.find_all(class_=lambda c: c and any(
        pattern in c for pattern in _HIDDEN_CLASS_PATTERNS
    )))


def _soup_to_markdown(soup: BeautifulSoup) -> str:
    """Render block-level text as markdown when trafilatura finds nothing."""
    root = soup.body or soup
    blocks: List[str] = []
    for element in root.find_all(_BLOCK_TAGS):
        # Nested blocks are emitted by their innermost element
        if element.find(_BLOCK_TAGS):
            continue
        text = " ".join(element.get_text(" ", strip=True).split())
        if not text:
            continue
        if element.name.startswith("h"):
            blocks.append(f"{'#' * int(element.name[1])} {text}")
        elif element.name == "li":
            blocks.append(f"- {text}")
        elif element.name == "pre":
            blocks.append(f"```\n{element.get_text()}\n```")
        elif element.name == "blockquote":
            blocks.append(f"> {text}")
        else:
            blocks.append(text)
    return "\n\n".join(blocks)


def optimize_tokens(markdown: str) -> str:
    """Squeeze whitespace out of markdown without changing its structure."""
    lines = [re.sub(r"[ \t]+", " ", line).rstrip() for line in markdown.splitlines()]
    collapsed = "\n".join(lines)
    collapsed = re.sub(r"\n{3,}", "\n\n", collapsed)
    return collapsed.strip()


def html_to_markdown(html: str, url: str | None = None, *, main_content_only: bool = False) -> str:
    """Convert cleaned HTML to markdown.

    trafilatura does the conversion; with ``main_content_only`` it keeps only
    the main article, otherwise recall is favored. Pages trafilatura cannot
    handle fall back to a plain block walk of the document.
    """
    extracted = trafilatura.extract(
        html,
        url=url,
        output_format="markdown",
        include_comments=False,
        include_tables=True,
        include_links=False,
        favor_precision=main_content_only,
        favor_recall=not main_content_only,
    )
    if extracted:
        return extracted
    return _soup_to_markdown(BeautifulSoup(html, "html.parser"))


def extract_all(
    html: str,
    base_url: str,
    *,
    extract_main_content: bool = False,
    optimize: bool = True,
) -> ExtractedContent:
    """Extract title, links, structured metadata and markdown in one pass.

    Args:
        html: The page HTML.
        base_url: The final (post-redirect) URL of the page.
        extract_main_content: Keep only the main article content.
        optimize: Collapse redundant whitespace in the markdown.

    Returns:
        ExtractedContent for the page.
    """
    soup = BeautifulSoup(html, "html.parser")
    title = _extract_title(soup)
    structured = _extract_structured(soup, base_url)

    # Links are collected before noise removal drops nav and footer
    try:
        links = extract_same_origin_urls(html, base_url, get_origin(base_url))
    except InvalidUrlError:
        links = []

    _remove_noise(soup)
    markdown = html_to_markdown(str(soup), base_url, main_content_only=extract_main_content)
    if optimize:
        markdown = optimize_tokens(markdown)

    return ExtractedContent(
        title=title,
        links=links,
        markdown=markdown,
        structured=structured,
    )
