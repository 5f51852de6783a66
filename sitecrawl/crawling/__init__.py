"""Crawl engine: scheduling, robots/sitemap integration and resumable state.

Usage:
    from sitecrawl.crawling import CrawlConfig, crawl

    result = await crawl("https://docs.example.com/", CrawlConfig(max_depth=2))
"""

from .config import (
    ChunkingConfig,
    CrawlConfig,
    CrawlStateConfig,
    RobotsConfig,
    ScrapeConfig,
    SitemapConfig,
)
from .crawl_state import CrawlState, CrawlStateStorage, state_id_for
from .crawler import Crawler, Frontier, crawl
from .models import CrawlError, CrawlResult, FrontierItem, ScrapedPage
from .scheduler import HostScheduler
from .scraper import ScrapeCache, Scraper

__all__ = [
    # Config
    "ChunkingConfig",
    "CrawlConfig",
    "CrawlStateConfig",
    "RobotsConfig",
    "ScrapeConfig",
    "SitemapConfig",
    # Models
    "CrawlError",
    "CrawlResult",
    "FrontierItem",
    "ScrapedPage",
    # State
    "CrawlState",
    "CrawlStateStorage",
    "state_id_for",
    # Engine
    "Crawler",
    "Frontier",
    "HostScheduler",
    "ScrapeCache",
    "Scraper",
    "crawl",
]
