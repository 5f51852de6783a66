"""CLI commands for crawling and scraping.

Commands:
- crawl: Breadth-first crawl of a site from a start URL
- scrape: Scrape a single page to markdown
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from sitecrawl.config import get_config
from sitecrawl.crawling.config import SCRAPE_MODES, ChunkingConfig, CrawlConfig, ScrapeConfig
from sitecrawl.crawling.crawler import Crawler
from sitecrawl.crawling.models import CrawlResult, ScrapedPage
from sitecrawl.crawling.scraper import Scraper


def register_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add crawl and scrape subcommands to the main CLI parser."""

    crawl_parser = subparsers.add_parser(
        "crawl",
        description="Crawl a site breadth-first and convert its pages to markdown.",
        help="Crawl a site from a start URL.",
    )
    crawl_parser.add_argument("url", help="Start URL (http or https).")
    crawl_parser.add_argument(
        "--max-depth",
        type=int,
        help="Maximum link hops from the start URL (default: 1).",
    )
    crawl_parser.add_argument(
        "--max-pages",
        type=int,
        help="Stop after this many pages (default: 10).",
    )
    crawl_parser.add_argument(
        "--concurrency",
        type=int,
        help="Pages scraped concurrently per batch (default: 2).",
    )
    crawl_parser.add_argument(
        "--per-host-concurrency",
        type=int,
        help="Concurrent requests per host (default: same as --concurrency).",
    )
    crawl_parser.add_argument(
        "--min-delay-ms",
        type=int,
        help="Minimum milliseconds between request starts on one host (default: 0).",
    )
    crawl_parser.add_argument(
        "--include",
        action="append",
        dest="include_patterns",
        metavar="PATTERN",
        help="Only crawl URLs containing PATTERN (repeatable).",
    )
    crawl_parser.add_argument(
        "--exclude",
        action="append",
        dest="exclude_patterns",
        metavar="PATTERN",
        help="Skip URLs containing PATTERN (repeatable).",
    )
    crawl_parser.add_argument(
        "--robots",
        action="store_true",
        default=None,
        help="Honor robots.txt.",
    )
    crawl_parser.add_argument(
        "--user-agent",
        help="Crawler name used to select robots.txt rules (default: sitecrawl).",
    )
    crawl_parser.add_argument(
        "--ignore-crawl-delay",
        action="store_true",
        help="Do not slow down for a robots.txt Crawl-delay.",
    )
    crawl_parser.add_argument(
        "--sitemap",
        action="store_true",
        default=None,
        help="Seed the frontier from /sitemap.xml.",
    )
    crawl_parser.add_argument(
        "--sitemap-max-urls",
        type=int,
        help="Maximum URLs taken from the sitemap (default: 1000).",
    )
    crawl_parser.add_argument(
        "--state",
        action="store_true",
        default=None,
        help="Persist crawl state so an interrupted crawl can resume.",
    )
    crawl_parser.add_argument(
        "--state-dir",
        type=Path,
        help="Directory for crawl state files.",
    )
    crawl_parser.add_argument(
        "--state-id",
        help="Crawl state identifier (default: hash of the start URL).",
    )
    crawl_parser.add_argument(
        "--no-resume",
        action="store_true",
        help="Start fresh even if saved state exists.",
    )
    crawl_parser.add_argument(
        "--flush-every",
        type=int,
        help="Persist state every N batches (default: 10).",
    )
    crawl_parser.add_argument(
        "--mode",
        choices=SCRAPE_MODES,
        help="Fetch mode for each page (default: hybrid).",
    )
    crawl_parser.add_argument(
        "--json",
        action="store_true",
        dest="output_json",
        help="Output results in JSON format.",
    )
    crawl_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    crawl_parser.set_defaults(func=crawl_cli)

    scrape_parser = subparsers.add_parser(
        "scrape",
        description="Scrape a single page and print it as markdown.",
        help="Scrape one URL.",
    )
    scrape_parser.add_argument("url", help="URL to scrape.")
    scrape_parser.add_argument(
        "--mode",
        choices=SCRAPE_MODES,
        default="hybrid",
        help="Fetch mode (default: hybrid).",
    )
    scrape_parser.add_argument(
        "--wait-for",
        metavar="SELECTOR",
        help="CSS selector to wait for when rendering in a browser.",
    )
    scrape_parser.add_argument(
        "--main-content",
        action="store_true",
        help="Keep only the main article content.",
    )
    scrape_parser.add_argument(
        "--chunk",
        action="store_true",
        help="Split the markdown into token-bounded chunks.",
    )
    scrape_parser.add_argument(
        "--json",
        action="store_true",
        dest="output_json",
        help="Output the page in JSON format.",
    )
    scrape_parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging.",
    )
    scrape_parser.set_defaults(func=scrape_cli)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _section_options(base: dict[str, Any], *keys: str) -> dict[str, Any]:
    value = None
    for key in keys:
        found = base.pop(key, None)
        if value is None:
            value = found
    if isinstance(value, dict):
        return dict(value)
    if value is True:
        return {"enabled": True}
    return {}


def build_crawl_config(args: argparse.Namespace) -> CrawlConfig:
    """Merge project config defaults with command-line flags.

    Raises:
        ValueError: If an option is out of range.
    """
    project = get_config()
    options = project.crawl_options
    robots = _section_options(options, "robots")
    sitemap = _section_options(options, "sitemap")
    state = _section_options(options, "crawl_state", "crawlState")

    flags = {
        "max_depth": args.max_depth,
        "max_pages": args.max_pages,
        "concurrency": args.concurrency,
        "per_host_concurrency": args.per_host_concurrency,
        "min_delay_ms": args.min_delay_ms,
        "include_patterns": args.include_patterns,
        "exclude_patterns": args.exclude_patterns,
        "mode": args.mode,
    }
    options.update({key: value for key, value in flags.items() if value is not None})

    if args.robots:
        robots["enabled"] = True
    user_agent = args.user_agent or project.user_agent
    if user_agent:
        robots["user_agent"] = user_agent
    if args.ignore_crawl_delay:
        robots["respect_crawl_delay"] = False

    if args.sitemap:
        sitemap["enabled"] = True
    if args.sitemap_max_urls is not None:
        sitemap["max_urls"] = args.sitemap_max_urls

    if args.state:
        state["enabled"] = True
    state.setdefault("dir", project.state_dir)
    if args.state_dir is not None:
        state["dir"] = args.state_dir
    if args.state_id:
        state["id"] = args.state_id
    if args.no_resume:
        state["resume"] = False
    if args.flush_every is not None:
        state["flush_every"] = args.flush_every

    options["robots"] = robots
    options["sitemap"] = sitemap
    options["crawl_state"] = state
    return CrawlConfig.from_dict(options)


def _print_crawl_summary(result: CrawlResult) -> None:
    print(f"Crawled {result.total_pages} page(s), max depth {result.max_depth_reached}")
    for page in result.pages:
        title = f" - {page.title}" if page.title else ""
        print(f"  {page.url}{title}")
    if result.errors:
        print()
        print("Errors encountered:")
        for error in result.errors:
            print(f"  - {error.url}: {error.error}")


async def _run_crawl(url: str, config: CrawlConfig) -> CrawlResult:
    crawler = Crawler()
    try:
        return await crawler.crawl(url, config)
    finally:
        await crawler.close()


def crawl_cli(args: argparse.Namespace) -> int:
    """Execute the crawl command."""
    _configure_logging(args.verbose)

    try:
        config = build_crawl_config(args)
    except ValueError as exc:
        print(f"Invalid crawl options: {exc}", file=sys.stderr)
        return 2

    result = asyncio.run(_run_crawl(args.url, config))

    if args.output_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_crawl_summary(result)

    return 1 if result.total_pages == 0 and result.errors else 0


async def _run_scrape(url: str, config: ScrapeConfig) -> ScrapedPage:
    scraper = Scraper()
    try:
        return await scraper.scrape(url, config)
    finally:
        await scraper.close()


def scrape_cli(args: argparse.Namespace) -> int:
    """Execute the scrape command."""
    _configure_logging(args.verbose)

    try:
        config = ScrapeConfig(
            mode=args.mode,
            wait_for=args.wait_for,
            extract_main_content=args.main_content,
            chunking=ChunkingConfig(enabled=args.chunk),
        )
    except ValueError as exc:
        print(f"Invalid scrape options: {exc}", file=sys.stderr)
        return 2

    page = asyncio.run(_run_scrape(args.url, config))

    if args.output_json:
        print(json.dumps(page.to_dict(), indent=2, default=str))
    elif page.error:
        print(f"Error scraping {args.url}: {page.error}", file=sys.stderr)
    else:
        if page.title:
            print(f"# {page.title}")
            print()
        print(page.content)

    return 1 if page.error else 0
