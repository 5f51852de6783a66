"""Configuration for scraping and crawling.

This module defines the configuration dataclasses for a crawl, including the
politeness settings (per-host concurrency, request spacing, robots.txt
compliance) and the opt-in sitemap seeding and resumable state features.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Tuple

SCRAPE_MODES = ("static", "hybrid", "browser")
STEALTH_LEVELS = ("basic", "balanced")


def _snake_case(key: str) -> str:
    out = []
    for char in key:
        if char.isupper():
            out.append("_")
            out.append(char.lower())
        else:
            out.append(char)
    return "".join(out)


def _normalize_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    return {_snake_case(key): value for key, value in data.items()}


def _known_fields(cls: type, data: Mapping[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {key: value for key, value in data.items() if key in names}


def _section(value: Any) -> dict[str, Any] | None:
    """Turn a ``bool | dict`` option into keyword arguments.

    ``True`` enables the section with defaults, ``False``/``None`` leaves it
    at its defaults (disabled). A mapping is only enabled when it says so.
    """
    if value is None or value is False:
        return None
    if value is True:
        return {"enabled": True}
    if isinstance(value, Mapping):
        return _normalize_keys(value)
    raise ValueError(f"Expected a bool or mapping, got {type(value).__name__}")


@dataclass(frozen=True)
class ChunkingConfig:
    """Markdown chunking options.

    Attributes:
        enabled: Attach ``chunks`` to scraped pages.
        max_tokens: Approximate token budget per chunk.
        overlap_tokens: Tokens repeated between consecutive chunks.
    """

    enabled: bool = False
    max_tokens: int = 1200
    overlap_tokens: int = 0

    def __post_init__(self) -> None:
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if self.overlap_tokens < 0:
            raise ValueError("overlap_tokens must not be negative")


@dataclass(frozen=True)
class ScrapeConfig:
    """Options for a single-page scrape.

    Attributes:
        mode: "static" (HTTP only), "hybrid" (HTTP first, browser when the
            page is client-side rendered) or "browser" (always render).
        wait_for: CSS selector to wait for when rendering.
        extract_main_content: Keep only the main article content.
        optimize_tokens: Collapse redundant whitespace in the markdown.
        stealth: Harden the browser fingerprint when rendering.
        stealth_level: "basic" or "balanced".
        max_response_bytes: Cap on the static response body.
        chunking: Chunking options.
    """

    mode: str = "hybrid"
    wait_for: str | None = None
    extract_main_content: bool = False
    optimize_tokens: bool = True
    stealth: bool = False
    stealth_level: str = "balanced"
    max_response_bytes: int | None = None
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.mode not in SCRAPE_MODES:
            raise ValueError(f"Invalid mode: {self.mode}. Must be one of {SCRAPE_MODES}")
        if self.stealth_level not in STEALTH_LEVELS:
            raise ValueError(
                f"Invalid stealth_level: {self.stealth_level}. Must be one of {STEALTH_LEVELS}"
            )
        if self.max_response_bytes is not None and self.max_response_bytes < 1:
            raise ValueError("max_response_bytes must be positive")
        wait_for = self.wait_for.strip() if self.wait_for else None
        object.__setattr__(self, "wait_for", wait_for or None)

    def cache_key(self, url: str) -> str:
        """Key for the in-memory scrape cache; covers every option that changes output."""
        parts = [
            url,
            self.mode,
            "main" if self.extract_main_content else "full",
            "optimized" if self.optimize_tokens else "raw",
            "stealth" if self.stealth else "no-stealth",
            self.stealth_level,
            self.wait_for or "",
            str(self.max_response_bytes or ""),
        ]
        if self.chunking.enabled:
            parts.append(f"chunks-{self.chunking.max_tokens}-{self.chunking.overlap_tokens}")
        return ":".join(parts)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ScrapeConfig":
        options = _known_fields(cls, _normalize_keys(data))
        chunking = options.pop("chunking", None)
        if isinstance(chunking, ChunkingConfig):
            options["chunking"] = chunking
        else:
            section = _section(chunking)
            if section is not None:
                options["chunking"] = ChunkingConfig(**_known_fields(ChunkingConfig, section))
        return cls(**options)


@dataclass(frozen=True)
class RobotsConfig:
    """robots.txt compliance.

    Attributes:
        enabled: Fetch robots.txt and drop disallowed URLs.
        user_agent: Crawler name used to select the robots.txt section.
        respect_crawl_delay: Use Crawl-delay when it exceeds min_delay_ms.
    """

    enabled: bool = False
    user_agent: str = "sitecrawl"
    respect_crawl_delay: bool = True

    def __post_init__(self) -> None:
        if not self.user_agent.strip():
            raise ValueError("user_agent must not be empty")


@dataclass(frozen=True)
class SitemapConfig:
    """Sitemap seeding from ``{origin}/sitemap.xml``."""

    enabled: bool = False
    max_urls: int = 1000

    def __post_init__(self) -> None:
        if self.max_urls < 0:
            raise ValueError("max_urls must not be negative")


@dataclass(frozen=True)
class CrawlStateConfig:
    """Durable, resumable crawl state.

    Attributes:
        enabled: Persist the frontier to ``{dir}/{id}.json``.
        dir: State directory. Uses the cache state directory if None.
        id: State identifier. Defaults to a hash of the start URL.
        resume: Load an existing snapshot before crawling.
        flush_every: Persist after every N dispatched batches.
        persist_pages: Include accepted pages and errors in the snapshot.
    """

    enabled: bool = False
    dir: Path | None = None
    id: str | None = None
    resume: bool = True
    flush_every: int = 10
    persist_pages: bool = True

    def __post_init__(self) -> None:
        if self.flush_every < 1:
            raise ValueError("flush_every must be at least 1")
        if self.dir is not None and not isinstance(self.dir, Path):
            object.__setattr__(self, "dir", Path(self.dir))


@dataclass(frozen=True)
class CrawlConfig:
    """Configuration for a crawl.

    Attributes:
        max_depth: Maximum link hops from the seed.
        max_pages: Stop after this many accepted pages.
        concurrency: Pages scraped per batch.
        per_host_concurrency: Concurrent requests per host. Defaults to
            ``concurrency``.
        min_delay_ms: Minimum spacing between request starts on one host.
        include_patterns: Substrings of which at least one must occur in a
            URL (when non-empty).
        exclude_patterns: Substrings that reject a URL.
        robots: robots.txt compliance settings.
        sitemap: Sitemap seeding settings.
        crawl_state: Resumable state settings.
        scrape: Options passed to every page scrape.
    """

    max_depth: int = 1
    max_pages: int = 10
    concurrency: int = 2
    per_host_concurrency: int | None = None
    min_delay_ms: int = 0
    include_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()
    robots: RobotsConfig = field(default_factory=RobotsConfig)
    sitemap: SitemapConfig = field(default_factory=SitemapConfig)
    crawl_state: CrawlStateConfig = field(default_factory=CrawlStateConfig)
    scrape: ScrapeConfig = field(default_factory=ScrapeConfig)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_depth < 0:
            raise ValueError("max_depth must not be negative")
        if self.max_pages < 0:
            raise ValueError("max_pages must not be negative")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.per_host_concurrency is not None and self.per_host_concurrency < 1:
            raise ValueError("per_host_concurrency must be at least 1")
        if self.min_delay_ms < 0:
            raise ValueError("min_delay_ms must not be negative")
        object.__setattr__(self, "include_patterns", tuple(self.include_patterns))
        object.__setattr__(self, "exclude_patterns", tuple(self.exclude_patterns))

    @property
    def effective_per_host_concurrency(self) -> int:
        if self.per_host_concurrency is None:
            return self.concurrency
        return self.per_host_concurrency

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CrawlConfig":
        """Build a config from a plain mapping.

        Keys may be camelCase (``maxDepth``) or snake_case (``max_depth``).
        ``robots``, ``sitemap`` and ``crawl_state`` accept a bool or a
        mapping. Scrape options may be nested under ``scrape`` or given at
        the top level.

        Raises:
            ValueError: If an option is out of range.
        """
        options = _normalize_keys(data)

        scrape_options = _known_fields(ScrapeConfig, options)
        nested = options.get("scrape")
        if isinstance(nested, Mapping):
            scrape_options.update(_normalize_keys(nested))

        kwargs = _known_fields(cls, options)
        kwargs.pop("scrape", None)
        for name, section_cls in (
            ("robots", RobotsConfig),
            ("sitemap", SitemapConfig),
            ("crawl_state", CrawlStateConfig),
        ):
            value = kwargs.pop(name, None)
            if isinstance(value, section_cls):
                kwargs[name] = value
                continue
            section = _section(value)
            if section is not None:
                kwargs[name] = section_cls(**_known_fields(section_cls, section))

        if isinstance(nested, ScrapeConfig):
            kwargs["scrape"] = nested
        else:
            kwargs["scrape"] = ScrapeConfig.from_dict(scrape_options)
        return cls(**kwargs)
