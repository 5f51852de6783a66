"""Breadth-first site crawler.

The crawler walks a site's link graph from a start URL:

1. Seed the frontier with the start URL (and, optionally, the sitemap),
   resuming from a persisted snapshot when one exists
2. Pull up to ``concurrency`` admissible items into a batch
3. Scrape the batch concurrently, each request admitted by the per-host
   scheduler, and wait for every scrape to settle
4. In batch order, record pages and errors and enqueue newly discovered
   same-origin links that pass the filter chain
5. Persist the frontier every few batches, and once at the end

Every URL is tracked by its canonical form (see ``dedupe_key``). A scrape
failure is recorded against the URL that was dispatched and never stops the
rest of the batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Any, Awaitable, Callable, Deque, Iterable, List, Set

from sitecrawl.parsing.fetcher import HttpResponse, http_get as default_http_get
from sitecrawl.parsing.robots import RobotsChecker
from sitecrawl.parsing.url_utils import (
    InvalidUrlError,
    dedupe_key,
    get_origin,
    host_of,
    is_http_url,
    is_same_origin,
    normalize_url,
)

from .config import CrawlConfig, ScrapeConfig
from .crawl_state import CrawlState, CrawlStateStorage, state_id_for
from .models import CrawlError, CrawlResult, FrontierItem, ScrapedPage
from .scheduler import HostScheduler
from .scraper import Scraper
from .sitemap import fetch_sitemap_urls

logger = logging.getLogger(__name__)

ScrapeFn = Callable[[str, ScrapeConfig], Awaitable[ScrapedPage]]
HttpGet = Callable[..., Awaitable[HttpResponse]]


def matches_patterns(
    url: str,
    include_patterns: Iterable[str] = (),
    exclude_patterns: Iterable[str] = (),
) -> bool:
    """Substring include/exclude check on an absolute URL.

    With include patterns, at least one must occur in the URL. Any exclude
    pattern occurring in the URL rejects it.
    """
    include_patterns = tuple(include_patterns)
    if include_patterns and not any(pattern in url for pattern in include_patterns):
        return False
    return not any(pattern in url for pattern in exclude_patterns)


class Frontier:
    """FIFO queue of URLs to crawl plus the visited and queued sets.

    ``queued`` mirrors the URLs waiting in the queue; ``visited`` only grows.
    """

    def __init__(self) -> None:
        self.queue: Deque[FrontierItem] = deque()
        self.visited: Set[str] = set()
        self.queued: Set[str] = set()

    def __len__(self) -> int:
        return len(self.queue)

    def is_known(self, url: str) -> bool:
        return url in self.visited or url in self.queued

    def push(self, url: str, depth: int) -> bool:
        """Enqueue ``url`` unless it was already visited or queued."""
        if self.is_known(url):
            return False
        self.queue.append(FrontierItem(url=url, depth=depth))
        self.queued.add(url)
        return True

    def pop(self) -> FrontierItem:
        item = self.queue.popleft()
        self.queued.discard(item.url)
        return item

    def mark_visited(self, url: str) -> None:
        self.visited.add(url)

    def hydrate(self, state: CrawlState) -> int:
        """Restore sets, then the queue minus anything already visited.

        Returns:
            Number of queue items restored
        """
        self.visited.update(state.visited)
        self.queued.update(state.queued)
        restored = 0
        for item in state.queue:
            if item.url in self.visited:
                continue
            self.queue.append(item)
            self.queued.add(item.url)
            restored += 1
        return restored


class Crawler:
    """Crawls a site breadth-first under politeness and budget limits.

    Usage:
        crawler = Crawler()
        try:
            result = await crawler.crawl("https://docs.example.com/", CrawlConfig(max_depth=2))
        finally:
            await crawler.close()

    Args:
        scrape: Async ``(url, ScrapeConfig) -> ScrapedPage`` operation.
            Defaults to a :class:`Scraper` owned by this crawler.
        http_get: HTTP primitive used for robots.txt and sitemap.xml.
        state_root: Directory for crawl state when the config names none.
    """

    def __init__(
        self,
        scrape: ScrapeFn | None = None,
        http_get: HttpGet | None = None,
        state_root: Path | None = None,
    ) -> None:
        self._scraper: Scraper | None = None
        if scrape is None:
            self._scraper = Scraper()
            scrape = self._scraper.scrape
        self._scrape = scrape
        self._http_get = http_get or default_http_get
        self._state_root = state_root

    async def close(self) -> None:
        """Shut down the scraper this crawler created, if any."""
        if self._scraper is not None:
            await self._scraper.close()

    async def crawl(self, start_url: str, config: CrawlConfig | None = None) -> CrawlResult:
        """Crawl a site starting from ``start_url``.

        Args:
            start_url: Absolute http(s) URL to start from.
            config: Crawl options; defaults to ``CrawlConfig()``.

        Returns:
            CrawlResult with accepted pages, the deepest depth reached and the
            errors encountered. An invalid start URL yields an empty result
            with a single error.
        """
        config = config or CrawlConfig()

        try:
            start_url = normalize_url(start_url)
        except InvalidUrlError:
            return self._invalid_start(start_url)
        if not is_http_url(start_url):
            return self._invalid_start(start_url)
        base_origin = get_origin(start_url)

        logger.info(
            "Starting crawl: %s (max_depth=%d, max_pages=%d, concurrency=%d)",
            start_url,
            config.max_depth,
            config.max_pages,
            config.concurrency,
        )

        robots: RobotsChecker | None = None
        if config.robots.enabled:
            robots = RobotsChecker(config.robots.user_agent, http_get=self._http_get)
            await robots.load(start_url)

        def should_queue(url: str) -> bool:
            # Cheapest checks first
            if not is_same_origin(url, base_origin):
                return False
            if not is_http_url(url):
                return False
            if not matches_patterns(url, config.include_patterns, config.exclude_patterns):
                return False
            if robots is not None and not robots.is_allowed(url):
                logger.debug("Skipped (robots.txt): %s", url)
                return False
            return True

        scheduler = self._build_scheduler(config, robots, start_url)
        frontier = Frontier()
        pages: List[ScrapedPage] = []
        accepted: Set[str] = set()
        errors: List[CrawlError] = []
        max_depth_reached = 0

        state_cfg = config.crawl_state
        storage: CrawlStateStorage | None = None
        state_id = ""
        if state_cfg.enabled:
            storage = CrawlStateStorage(state_cfg.dir or self._state_root)
            state_id = state_cfg.id or state_id_for(start_url)
            if state_cfg.resume:
                state = await asyncio.to_thread(storage.load_state, state_id)
                if state is not None:
                    restored = frontier.hydrate(state)
                    if state_cfg.persist_pages:
                        pages.extend(state.pages)
                        errors.extend(state.errors)
                        accepted.update(dedupe_key(page.url) for page in state.pages)
                    max_depth_reached = state.max_depth_reached
                    logger.info(
                        "Resuming crawl %s: %d visited, %d in frontier, %d pages",
                        state_id,
                        len(frontier.visited),
                        restored,
                        len(pages),
                    )

        start_key = dedupe_key(start_url)
        if should_queue(start_key):
            frontier.push(start_key, 0)

        if config.sitemap.enabled:
            seeds = await fetch_sitemap_urls(
                base_origin, config.sitemap.max_urls, http_get=self._http_get
            )
            added = sum(
                1 for url in map(dedupe_key, seeds)
                if should_queue(url) and frontier.push(url, 0)
            )
            logger.debug("Seeded %d URLs from sitemap", added)

        async def flush() -> None:
            if storage is None:
                return
            snapshot = CrawlState(
                start_url=start_url,
                base_origin=base_origin,
                queue=list(frontier.queue),
                visited=sorted(frontier.visited),
                queued=sorted(frontier.queued),
                pages=list(pages) if state_cfg.persist_pages else [],
                errors=list(errors),
                max_depth_reached=max_depth_reached,
            )
            try:
                await asyncio.to_thread(storage.save_state, state_id, snapshot)
            except (OSError, TypeError, ValueError) as exc:
                logger.warning("Failed to persist crawl state %s: %s", state_id, exc)

        batches = 0
        while frontier and len(pages) < config.max_pages:
            batch: List[FrontierItem] = []
            while (
                len(batch) < config.concurrency
                and frontier
                and len(pages) + len(batch) < config.max_pages
            ):
                item = frontier.pop()
                # Dropped, not retried
                if item.url in frontier.visited or item.depth > config.max_depth:
                    continue
                frontier.mark_visited(item.url)
                batch.append(item)

            if not batch:
                continue

            results = await asyncio.gather(
                *(self._dispatch(scheduler, item, config.scrape) for item in batch),
                return_exceptions=True,
            )

            for item, outcome in zip(batch, results):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    logger.warning("Failed to crawl %s: %s", item.url, outcome)
                    errors.append(CrawlError(item.url, str(outcome) or "Failed to scrape"))
                    continue

                page = outcome
                final_key = dedupe_key(page.url)
                frontier.mark_visited(final_key)

                if page.error:
                    logger.debug("Scrape error for %s: %s", item.url, page.error)
                    errors.append(CrawlError(item.url, page.error))
                    continue

                if final_key in accepted:
                    logger.debug("Skipping %s: already crawled as %s", item.url, final_key)
                    continue
                accepted.add(final_key)
                pages.append(page)
                max_depth_reached = max(max_depth_reached, item.depth)
                logger.debug(
                    "Crawled [%d/%d] depth=%d: %s",
                    len(pages),
                    config.max_pages,
                    item.depth,
                    page.url,
                )

                if item.depth < config.max_depth:
                    for link in page.links or ():
                        link_key = dedupe_key(link)
                        if not frontier.is_known(link_key) and should_queue(link_key):
                            frontier.push(link_key, item.depth + 1)

            batches += 1
            if storage is not None and batches % state_cfg.flush_every == 0:
                await flush()

        if storage is not None:
            await flush()

        logger.info(
            "Crawl complete for %s: %d pages, %d errors, max depth %d",
            start_url,
            len(pages),
            len(errors),
            max_depth_reached,
        )
        return CrawlResult(pages=pages, max_depth_reached=max_depth_reached, errors=errors)

    @staticmethod
    def _invalid_start(start_url: str) -> CrawlResult:
        logger.error("Invalid start URL: %s", start_url)
        return CrawlResult(errors=[CrawlError(start_url, "Invalid start URL")])

    @staticmethod
    def _build_scheduler(
        config: CrawlConfig,
        robots: RobotsChecker | None,
        start_url: str,
    ) -> HostScheduler:
        """One scheduler for the crawl; a robots crawl-delay can only raise the floor."""
        delay_ms = config.min_delay_ms
        if robots is not None and config.robots.respect_crawl_delay:
            crawl_delay_ms = robots.get_crawl_delay_ms(start_url)
            if crawl_delay_ms and crawl_delay_ms > delay_ms:
                logger.info("Using robots.txt crawl-delay of %d ms", crawl_delay_ms)
                delay_ms = crawl_delay_ms
        return HostScheduler(config.effective_per_host_concurrency, delay_ms)

    async def _dispatch(
        self,
        scheduler: HostScheduler,
        item: FrontierItem,
        scrape_config: ScrapeConfig,
    ) -> ScrapedPage:
        host = host_of(item.url)
        return await scheduler.run(host, lambda: self._scrape(item.url, scrape_config))


async def crawl(
    start_url: str,
    config: CrawlConfig | None = None,
    **options: Any,
) -> CrawlResult:
    """Crawl a site with a throwaway :class:`Crawler`.

    Options may be given as a ``CrawlConfig`` or as keyword arguments in the
    form accepted by :meth:`CrawlConfig.from_dict`, not both.
    """
    if config is not None and options:
        raise ValueError("Pass either a CrawlConfig or keyword options, not both")
    if config is None:
        config = CrawlConfig.from_dict(options)

    crawler = Crawler()
    try:
        return await crawler.crawl(start_url, config)
    finally:
        await crawler.close()
