"""Tests for the single-page scrape operation."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sitecrawl.crawling.config import ChunkingConfig, ScrapeConfig
from sitecrawl.crawling.scraper import (
    STATIC_DYNAMIC_CONTENT_ERROR,
    ScrapeCache,
    Scraper,
)
from sitecrawl.crawling.models import ScrapedPage
from sitecrawl.parsing.fetcher import FetchResult
from sitecrawl.parsing.rendering import RenderedPage, RenderingError

URL = "https://example.com/docs"

PAGE_HTML = """
<html>
  <head><title>Docs Home</title></head>
  <body>
    <h1>Docs Home</h1>
    <p>Welcome to the documentation. It explains how the crawler walks a site and
    turns each page into markdown suitable for indexing and retrieval.</p>
    <a href="/docs/install">Install</a>
    <a href="https://other.org/elsewhere">Elsewhere</a>
  </body>
</html>
"""


def _static(html: str = PAGE_HTML, **overrides) -> FetchResult:
    values = dict(
        url=URL,
        final_url=URL,
        html=html,
        status=200,
        headers={"content-type": "text/html"},
        is_static_success=True,
    )
    values.update(overrides)
    return FetchResult(**values)


def _csr_shell() -> FetchResult:
    return _static(
        html='<html><body><div id="root"></div></body></html>',
        is_static_success=False,
        needs_browser=True,
        error="Detected client-side rendered content",
    )


def _fetcher(result: FetchResult) -> MagicMock:
    fetcher = MagicMock()
    fetcher.fetch.return_value = result
    return fetcher


def _browser(rendered: RenderedPage | Exception | None = None) -> MagicMock:
    browser = MagicMock()
    if isinstance(rendered, Exception):
        browser.get_page = AsyncMock(side_effect=rendered)
    else:
        browser.get_page = AsyncMock(
            return_value=rendered
            or RenderedPage(url=URL, final_url=URL, html=PAGE_HTML, headers={"content-type": "text/html"})
        )
    browser.close = AsyncMock()
    return browser


class TestScrapeCache:
    """Tests for the in-memory LRU/TTL cache."""

    def test_get_and_set(self) -> None:
        cache = ScrapeCache()
        page = ScrapedPage(url=URL)
        cache.set("k", page)
        assert cache.get("k") is page
        assert cache.get("missing") is None

    def test_evicts_least_recently_used(self) -> None:
        cache = ScrapeCache(max_size=2)
        cache.set("a", ScrapedPage(url="a"))
        cache.set("b", ScrapedPage(url="b"))
        cache.get("a")
        cache.set("c", ScrapedPage(url="c"))

        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert len(cache) == 2

    def test_expired_entries_dropped(self) -> None:
        cache = ScrapeCache(ttl_seconds=10)
        with patch("sitecrawl.crawling.scraper.time.monotonic", return_value=100.0):
            cache.set("k", ScrapedPage(url=URL))
        with patch("sitecrawl.crawling.scraper.time.monotonic", return_value=111.0):
            assert cache.get("k") is None
        assert len(cache) == 0

    def test_rejects_zero_size(self) -> None:
        with pytest.raises(ValueError):
            ScrapeCache(max_size=0)


class TestScraper:
    """Tests for Scraper.scrape."""

    def test_static_success(self) -> None:
        browser = _browser()
        scraper = Scraper(fetcher=_fetcher(_static()), browser=browser)

        page = asyncio.run(scraper.scrape(URL, ScrapeConfig(mode="static")))

        assert page.error is None
        assert page.url == URL
        assert page.title == "Docs Home"
        assert page.links == ["https://example.com/docs/install"]
        assert "documentation" in page.content
        assert page.metadata["status"] == 200
        assert page.metadata["content-type"] == "text/html"
        assert page.metadata["content_length"] == len(page.content)
        assert "stealth_applied" not in page.metadata
        assert page.chunks is None
        browser.get_page.assert_not_awaited()

    def test_final_url_after_redirect(self) -> None:
        scraper = Scraper(fetcher=_fetcher(_static(final_url="https://example.com/docs/home")))
        page = asyncio.run(scraper.scrape(URL, ScrapeConfig(mode="static")))
        assert page.url == "https://example.com/docs/home"

    def test_static_mode_reports_dynamic_content(self) -> None:
        browser = _browser()
        scraper = Scraper(fetcher=_fetcher(_csr_shell()), browser=browser)

        page = asyncio.run(scraper.scrape(URL, ScrapeConfig(mode="static")))

        assert page.error == STATIC_DYNAMIC_CONTENT_ERROR
        browser.get_page.assert_not_awaited()

    def test_hybrid_falls_back_to_browser(self) -> None:
        browser = _browser()
        scraper = Scraper(fetcher=_fetcher(_csr_shell()), browser=browser)

        page = asyncio.run(
            scraper.scrape(URL, ScrapeConfig(mode="hybrid", wait_for="#root", stealth=True))
        )

        assert page.error is None
        assert page.title == "Docs Home"
        assert page.metadata["stealth_applied"] is True
        assert page.metadata["stealth_level"] == "balanced"
        browser.get_page.assert_awaited_once_with(
            URL, "#root", stealth=True, stealth_level="balanced"
        )

    def test_browser_mode_skips_static_fetch(self) -> None:
        fetcher = _fetcher(_static())
        browser = _browser()
        scraper = Scraper(fetcher=fetcher, browser=browser)

        page = asyncio.run(scraper.scrape(URL, ScrapeConfig(mode="browser")))

        assert page.error is None
        assert page.metadata["stealth_applied"] is False
        assert "stealth_level" not in page.metadata
        fetcher.fetch.assert_not_called()

    def test_browser_failure_becomes_error_page(self) -> None:
        scraper = Scraper(browser=_browser(RenderingError("launch failed")))

        page = asyncio.run(scraper.scrape(URL, ScrapeConfig(mode="browser")))

        assert page.error == "Browser scrape failed: launch failed"
        assert page.status == 0

    def test_browser_non_2xx(self) -> None:
        rendered = RenderedPage(url=URL, final_url=URL, html="<html></html>", status=403)
        scraper = Scraper(browser=_browser(rendered))

        page = asyncio.run(scraper.scrape(URL, ScrapeConfig(mode="browser")))

        assert page.error == "Browser fetch returned HTTP 403"
        assert page.status == 403

    def test_http_error_reported(self) -> None:
        result = _static(html="", status=404, is_static_success=False, error="HTTP 404")
        scraper = Scraper(fetcher=_fetcher(result), browser=_browser())

        page = asyncio.run(scraper.scrape(URL))

        assert page.error == "HTTP 404"
        assert page.status == 404
        assert page.url == URL

    def test_invalid_url(self) -> None:
        fetcher = _fetcher(_static())
        scraper = Scraper(fetcher=fetcher)

        page = asyncio.run(scraper.scrape("ftp://example.com/file"))

        assert page.error == "Invalid URL"
        fetcher.fetch.assert_not_called()

    def test_passes_response_cap(self) -> None:
        fetcher = _fetcher(_static())
        scraper = Scraper(fetcher=fetcher)

        asyncio.run(scraper.scrape(URL, ScrapeConfig(mode="static", max_response_bytes=4096)))

        assert fetcher.fetch.call_args.kwargs["max_bytes"] == 4096

    def test_results_are_cached(self) -> None:
        fetcher = _fetcher(_static())
        scraper = Scraper(fetcher=fetcher)
        config = ScrapeConfig(mode="static")

        async def run() -> tuple[ScrapedPage, ScrapedPage]:
            return await scraper.scrape(URL, config), await scraper.scrape(URL, config)

        first, second = asyncio.run(run())

        assert first is second
        assert fetcher.fetch.call_count == 1

    def test_errors_are_not_cached(self) -> None:
        result = _static(html="", status=500, is_static_success=False, error="HTTP 500")
        fetcher = _fetcher(result)
        scraper = Scraper(fetcher=fetcher)

        async def run() -> None:
            await scraper.scrape(URL, ScrapeConfig(mode="static"))
            await scraper.scrape(URL, ScrapeConfig(mode="static"))

        asyncio.run(run())
        assert fetcher.fetch.call_count == 2

    def test_chunking_attaches_chunks(self) -> None:
        scraper = Scraper(fetcher=_fetcher(_static()))
        config = ScrapeConfig(mode="static", chunking=ChunkingConfig(enabled=True, max_tokens=500))

        page = asyncio.run(scraper.scrape(URL, config))

        assert page.chunks
        assert page.chunks[0].id == "chunk_1"
        assert page.chunks[0].url == URL

    def test_call_delegates_to_scrape(self) -> None:
        scraper = Scraper(fetcher=_fetcher(_static()))
        page = asyncio.run(scraper(URL, ScrapeConfig(mode="static")))
        assert page.title == "Docs Home"


class TestScraperClose:
    """Tests for resource ownership."""

    def test_does_not_close_injected_resources(self) -> None:
        fetcher = _fetcher(_static())
        browser = _browser()
        scraper = Scraper(fetcher=fetcher, browser=browser)

        asyncio.run(scraper.close())

        fetcher.close.assert_not_called()
        browser.close.assert_not_awaited()

    def test_closes_owned_resources(self) -> None:
        scraper = Scraper()
        browser = _browser()
        fetcher = _fetcher(_static())
        scraper._browser = browser
        scraper._fetcher = fetcher

        asyncio.run(scraper.close())

        browser.close.assert_awaited_once()
        fetcher.close.assert_called_once()
