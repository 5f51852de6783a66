"""Data structures shared by the scrape operation and the crawler."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from sitecrawl.parsing.chunking import ContentChunk


@dataclass(frozen=True)
class FrontierItem:
    """A URL waiting in the crawl frontier.

    Attributes:
        url: Canonical URL
        depth: Link hops from the seed (0 for the start URL and sitemap seeds)
    """
    url: str
    depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "depth": self.depth}

    @classmethod
    def from_dict(cls, data: Any) -> "FrontierItem | None":
        """Build an item from persisted JSON; malformed entries yield None."""
        if not isinstance(data, dict):
            return None
        url = data.get("url")
        depth = data.get("depth")
        if not isinstance(url, str) or isinstance(depth, bool) or not isinstance(depth, int):
            return None
        if depth < 0:
            return None
        return cls(url=url, depth=depth)


@dataclass
class ScrapedPage:
    """Result of scraping one URL.

    ``url`` is the final URL after redirects. A page whose metadata carries
    an ``error`` key is a failed scrape; the crawler looks at nothing else to
    tell success from failure.

    Attributes:
        url: Final (post-redirect) URL
        content: Clean markdown content
        title: Page title
        links: Same-origin absolute links found on the page
        metadata: Response headers plus status, content_length, structured
            metadata and, on failure, error
        chunks: Optional token-bounded chunks of ``content``
    """
    url: str
    content: str = ""
    title: str = ""
    links: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    chunks: List[ContentChunk] | None = None

    @property
    def error(self) -> str | None:
        value = self.metadata.get("error")
        return str(value) if value else None

    @property
    def status(self) -> int:
        return int(self.metadata.get("status", 0) or 0)

    @classmethod
    def error_page(
        cls,
        url: str,
        error: str,
        status: int = 0,
        headers: Dict[str, str] | None = None,
    ) -> "ScrapedPage":
        """Build a failed page carrying the error in its metadata."""
        return cls(
            url=url,
            metadata={**(headers or {}), "status": status, "error": error},
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "url": self.url,
            "content": self.content,
            "title": self.title,
            "links": list(self.links or ()),
            "metadata": dict(self.metadata),
        }
        if self.chunks is not None:
            data["chunks"] = [chunk.to_dict() for chunk in self.chunks]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScrapedPage":
        chunks = data.get("chunks")
        return cls(
            url=data["url"],
            content=data.get("content", ""),
            title=data.get("title") or "",
            links=list(data.get("links") or []),
            metadata=dict(data.get("metadata") or {}),
            chunks=[ContentChunk.from_dict(c) for c in chunks] if chunks is not None else None,
        )


@dataclass(frozen=True)
class CrawlError:
    """A URL that could not be crawled and why."""
    url: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "error": self.error}

    @classmethod
    def from_dict(cls, data: Any) -> "CrawlError | None":
        if not isinstance(data, dict) or not isinstance(data.get("url"), str):
            return None
        return cls(url=data["url"], error=str(data.get("error", "")))


@dataclass
class CrawlResult:
    """Outcome of a crawl.

    Attributes:
        pages: Accepted pages in acceptance order
        max_depth_reached: Deepest depth among accepted pages
        errors: Failed URLs, keyed by the URL that was dispatched
    """
    pages: List[ScrapedPage] = field(default_factory=list)
    max_depth_reached: int = 0
    errors: List[CrawlError] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages": [page.to_dict() for page in self.pages],
            "total_pages": self.total_pages,
            "max_depth_reached": self.max_depth_reached,
            "errors": [error.to_dict() for error in self.errors],
        }
