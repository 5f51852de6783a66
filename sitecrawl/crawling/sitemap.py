"""Sitemap seeding.

A sitemap is a machine-readable list of URLs that a site publishes for
crawlers. We fetch ``{origin}/sitemap.xml`` and scan it for ``<loc>``
elements; this is a tolerant text scan, not XML validation, so slightly
broken sitemaps still yield their URLs. A ``<sitemapindex>`` is expanded one
level into its child sitemaps on the same origin.

Every failure is soft: the crawl simply proceeds without sitemap seeds.
"""

from __future__ import annotations

import gzip
import html
import logging
import re
from collections import deque
from typing import Awaitable, Callable, List

from sitecrawl.parsing.fetcher import HttpResponse, http_get
from sitecrawl.parsing.url_utils import InvalidUrlError, is_same_origin, normalize_url

logger = logging.getLogger(__name__)

HttpGet = Callable[..., Awaitable[HttpResponse]]

SITEMAP_TIMEOUT_MS = 10_000
SITEMAP_MAX_BYTES = 2_000_000
MAX_CHILD_SITEMAPS = 10

_LOC_RE = re.compile(r"<loc\b[^>]*>\s*(.*?)\s*</loc\s*>", re.IGNORECASE | re.DOTALL)
_CDATA_RE = re.compile(r"^<!\[CDATA\[(.*)\]\]>$", re.DOTALL)
_SITEMAP_INDEX_RE = re.compile(r"<sitemapindex\b", re.IGNORECASE)


def extract_locs(xml_text: str) -> List[str]:
    """Return the text of every ``<loc>`` element in document order."""
    locs: List[str] = []
    for match in _LOC_RE.finditer(xml_text):
        value = match.group(1).strip()
        cdata = _CDATA_RE.match(value)
        if cdata:
            value = cdata.group(1).strip()
        value = html.unescape(value)
        if value:
            locs.append(value)
    return locs


def is_sitemap_index(xml_text: str) -> bool:
    return bool(_SITEMAP_INDEX_RE.search(xml_text))


def _decode(response: HttpResponse) -> str:
    body = response.body
    # Gzipped sitemaps are served as-is by some hosts
    if body[:2] == b"\x1f\x8b":
        try:
            body = gzip.decompress(body)
        except (OSError, EOFError) as exc:
            logger.debug("Could not decompress sitemap %s: %s", response.url, exc)
            return ""
    return body.decode("utf-8", errors="replace")


async def _fetch_sitemap_text(url: str, http_get: HttpGet) -> str | None:
    try:
        response = await http_get(
            url,
            headers={"Accept": "application/xml,text/xml,*/*"},
            timeout_ms=SITEMAP_TIMEOUT_MS,
            max_bytes=SITEMAP_MAX_BYTES,
        )
    except Exception as exc:
        logger.warning("Could not fetch sitemap %s: %s", url, exc)
        return None

    if not response.ok:
        logger.debug("No sitemap at %s (HTTP %d)", url, response.status)
        return None
    return _decode(response)


async def fetch_sitemap_urls(
    origin: str,
    max_urls: int = 1000,
    *,
    http_get: HttpGet = http_get,
) -> List[str]:
    """Fetch ``{origin}/sitemap.xml`` and return canonical page URLs.

    Args:
        origin: The site origin
        max_urls: Maximum number of URLs to return
        http_get: HTTP primitive used for the requests

    Returns:
        Normalized, de-duplicated URLs in sitemap order, at most ``max_urls``.
        Empty on any failure.
    """
    if max_urls <= 0:
        return []

    root = f"{origin.rstrip('/')}/sitemap.xml"
    pending = deque([root])
    seen_sitemaps = {root}
    children_fetched = 0
    urls: List[str] = []
    seen_urls: set[str] = set()

    while pending and len(urls) < max_urls:
        sitemap_url = pending.popleft()
        text = await _fetch_sitemap_text(sitemap_url, http_get)
        if not text:
            continue

        locs = extract_locs(text)
        if is_sitemap_index(text):
            for loc in locs:
                if children_fetched >= MAX_CHILD_SITEMAPS:
                    break
                if loc in seen_sitemaps or not is_same_origin(loc, origin):
                    continue
                seen_sitemaps.add(loc)
                pending.append(loc)
                children_fetched += 1
            continue

        for loc in locs:
            try:
                normalized = normalize_url(loc)
            except InvalidUrlError:
                continue
            if normalized in seen_urls:
                continue
            seen_urls.add(normalized)
            urls.append(normalized)
            if len(urls) >= max_urls:
                break

    if urls:
        logger.info("Sitemap for %s listed %d URLs", origin, len(urls))
    return urls
