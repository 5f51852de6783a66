"""Single-page scrape operation.

Turns one URL into a :class:`ScrapedPage`: fetch (static HTTP, a headless
browser, or static with a browser fallback for client-side rendered pages),
extract title/links/markdown in one pass, optionally chunk the markdown, and
cache the result in memory.

Ordinary HTTP and rendering failures never raise; they come back as a page
whose ``metadata["error"]`` describes the problem.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Dict

from sitecrawl.parsing.chunking import chunk_markdown
from sitecrawl.parsing.extraction import extract_all
from sitecrawl.parsing.fetcher import SmartFetcher
from sitecrawl.parsing.rendering import BrowserManager, RenderingError
from sitecrawl.parsing.url_utils import is_http_url

from .config import ScrapeConfig
from .models import ScrapedPage

logger = logging.getLogger(__name__)

STATIC_DYNAMIC_CONTENT_ERROR = (
    'Static mode detected dynamic content. Use mode "hybrid" or "browser".'
)


class ScrapeCache:
    """In-memory LRU cache of scraped pages with a time-to-live."""

    def __init__(self, ttl_seconds: float = 300.0, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._entries: "OrderedDict[str, tuple[ScrapedPage, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> ScrapedPage | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        page, stored_at = entry
        now = time.monotonic()
        if now - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        # Refresh recency and age for active entries
        self._entries[key] = (page, now)
        self._entries.move_to_end(key)
        return page

    def set(self, key: str, page: ScrapedPage) -> None:
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        self._entries[key] = (page, time.monotonic())

    def clear(self) -> None:
        self._entries.clear()


class Scraper:
    """Scrapes pages into clean markdown.

    The browser is only launched when a page needs it. A scraper that created
    its own browser or fetcher owns them and releases them in :meth:`close`.

    Usage:
        scraper = Scraper()
        try:
            page = await scraper.scrape("https://example.com/")
        finally:
            await scraper.close()
    """

    def __init__(
        self,
        fetcher: SmartFetcher | None = None,
        browser: BrowserManager | None = None,
        cache: ScrapeCache | None = None,
    ) -> None:
        self._owns_fetcher = fetcher is None
        self._owns_browser = browser is None
        self._fetcher = fetcher
        self._browser = browser
        self.cache = cache if cache is not None else ScrapeCache()

    @property
    def fetcher(self) -> SmartFetcher:
        if self._fetcher is None:
            self._fetcher = SmartFetcher()
        return self._fetcher

    @property
    def browser(self) -> BrowserManager:
        if self._browser is None:
            self._browser = BrowserManager()
        return self._browser

    async def __call__(self, url: str, config: ScrapeConfig | None = None) -> ScrapedPage:
        return await self.scrape(url, config)

    async def scrape(self, url: str, config: ScrapeConfig | None = None) -> ScrapedPage:
        """Scrape a single URL.

        Args:
            url: Absolute http(s) URL.
            config: Scrape options; defaults to hybrid mode.

        Returns:
            The scraped page. Failures are reported via ``metadata["error"]``.
        """
        config = config or ScrapeConfig()
        if not is_http_url(url):
            return ScrapedPage.error_page(url, "Invalid URL")

        cache_key = config.cache_key(url)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Scrape cache hit for %s", url)
            return cached

        html = ""
        status = 0
        headers: Dict[str, str] = {}
        final_url = url
        browser_used = False
        static_error: str | None = None
        use_browser = config.mode == "browser"

        if config.mode in ("static", "hybrid"):
            result = await asyncio.to_thread(
                self.fetcher.fetch,
                url,
                max_bytes=config.max_response_bytes,
            )
            status = result.status
            headers = result.headers
            final_url = result.final_url or url

            if result.is_static_success:
                html = result.html
            elif result.needs_browser and config.mode == "hybrid":
                use_browser = True
            elif result.needs_browser:
                static_error = STATIC_DYNAMIC_CONTENT_ERROR
            else:
                static_error = result.error or (
                    f"Static fetch failed: HTTP {status}" if status else "Static fetch failed"
                )

        if use_browser and not html:
            logger.info("Switching to browser for %s", url)
            try:
                rendered = await self.browser.get_page(
                    url,
                    config.wait_for,
                    stealth=config.stealth,
                    stealth_level=config.stealth_level,
                )
            except RenderingError as exc:
                logger.error("Browser scrape failed for %s: %s", url, exc)
                return ScrapedPage.error_page(url, f"Browser scrape failed: {exc}", 0, headers)

            browser_used = True
            html = rendered.html
            status = rendered.status
            headers = rendered.headers
            final_url = rendered.final_url or final_url
            if not 200 <= status < 300:
                return ScrapedPage.error_page(
                    url, f"Browser fetch returned HTTP {status}", status, headers
                )

        if not html:
            return ScrapedPage.error_page(
                url, static_error or "No HTML content was fetched", status, headers
            )

        extracted = extract_all(
            html,
            final_url,
            extract_main_content=config.extract_main_content,
            optimize=config.optimize_tokens,
        )

        metadata: Dict[str, Any] = {
            **headers,
            "status": status,
            "content_length": len(extracted.markdown),
            "structured": extracted.structured,
        }
        if browser_used:
            metadata["stealth_applied"] = config.stealth
            if config.stealth:
                metadata["stealth_level"] = config.stealth_level

        page = ScrapedPage(
            url=final_url,
            content=extracted.markdown,
            title=extracted.title,
            links=extracted.links,
            metadata=metadata,
        )

        if config.chunking.enabled:
            page.chunks = chunk_markdown(
                page.content,
                page.url,
                max_tokens=config.chunking.max_tokens,
                overlap_tokens=config.chunking.overlap_tokens,
            )

        self.cache.set(cache_key, page)
        return page

    async def close(self) -> None:
        """Release the browser and HTTP session this scraper created."""
        if self._owns_browser and self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._owns_fetcher and self._fetcher is not None:
            self._fetcher.close()
            self._fetcher = None
