"""Crawl state persistence for resumable crawls.

This module provides the snapshot that lets an interrupted crawl pick up
where it left off. The CrawlState captures:
- URL frontier (queue of URLs to visit, with their depth)
- Visited and queued URL sets (for deduplication)
- Accepted pages and errors (optional, to bound snapshot size)

Snapshots are written atomically (temporary file, then rename) so a reader
never observes a half-written file.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List

from sitecrawl import paths

from .models import CrawlError, FrontierItem, ScrapedPage

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def state_id_for(start_url: str) -> str:
    """Generate a consistent state identifier for a start URL."""
    return hashlib.sha256(start_url.encode("utf-8")).hexdigest()[:16]


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


@dataclass
class CrawlState:
    """Persistent snapshot of a crawl.

    Attributes:
        start_url: Canonical start URL
        base_origin: Origin every crawled URL must share
        queue: Frontier items not yet dispatched
        visited: Canonical URLs already dispatched (or reached via redirect)
        queued: Canonical URLs present in the frontier
        pages: Accepted pages (empty unless pages are persisted)
        errors: Failed URLs
        max_depth_reached: Deepest depth among accepted pages
        updated_at: When the snapshot was taken
        version: Snapshot format version
    """

    start_url: str
    base_origin: str
    queue: List[FrontierItem] = field(default_factory=list)
    visited: List[str] = field(default_factory=list)
    queued: List[str] = field(default_factory=list)
    pages: List[ScrapedPage] = field(default_factory=list)
    errors: List[CrawlError] = field(default_factory=list)
    max_depth_reached: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = STATE_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Serialize state to dictionary for JSON storage."""
        return {
            "version": self.version,
            "start_url": self.start_url,
            "base_origin": self.base_origin,
            "queue": [item.to_dict() for item in self.queue],
            "visited": list(self.visited),
            "queued": list(self.queued),
            "pages": [page.to_dict() for page in self.pages],
            "errors": [error.to_dict() for error in self.errors],
            "max_depth_reached": self.max_depth_reached,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CrawlState":
        """Deserialize state from dictionary.

        Malformed queue, page and error entries are dropped.

        Raises:
            KeyError, TypeError, ValueError: If a required field is missing or
                has the wrong shape.
        """
        if not isinstance(data.get("queue"), list):
            raise ValueError("Crawl state has no queue")
        if not isinstance(data.get("visited"), list) or not isinstance(data.get("queued"), list):
            raise ValueError("Crawl state has no visited/queued sets")

        queue = [item for item in map(FrontierItem.from_dict, data["queue"]) if item is not None]
        errors = [e for e in map(CrawlError.from_dict, data.get("errors") or []) if e is not None]
        pages = [
            ScrapedPage.from_dict(page)
            for page in data.get("pages") or []
            if isinstance(page, dict) and isinstance(page.get("url"), str)
        ]

        updated_at = datetime.now(timezone.utc)
        if data.get("updated_at"):
            updated_at = datetime.fromisoformat(data["updated_at"])

        max_depth = data.get("max_depth_reached", 0)
        return cls(
            version=int(data.get("version", STATE_VERSION)),
            start_url=data["start_url"],
            base_origin=data["base_origin"],
            queue=queue,
            visited=_string_list(data["visited"]),
            queued=_string_list(data["queued"]),
            pages=pages,
            errors=errors,
            max_depth_reached=max_depth if isinstance(max_depth, int) else 0,
            updated_at=updated_at,
        )


class CrawlStateStorage:
    """Manages persistence of crawl states as ``{root}/{state_id}.json``."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = Path(root) if root is not None else paths.get_state_dir()

    def state_path(self, state_id: str) -> Path:
        """Get the path for a crawl state file."""
        return self.root / f"{state_id}.json"

    def state_exists(self, state_id: str) -> bool:
        return self.state_path(state_id).exists()

    def save_state(self, state_id: str, state: CrawlState) -> Path:
        """Save crawl state atomically.

        Raises:
            OSError: If the directory or file cannot be written
        """
        self.root.mkdir(parents=True, exist_ok=True)
        state_path = self.state_path(state_id)
        state_content = json.dumps(state.to_dict(), default=str)

        tmp_path = state_path.with_suffix(".json.tmp")
        tmp_path.write_text(state_content, encoding="utf-8")
        tmp_path.replace(state_path)
        return state_path

    def load_state(self, state_id: str) -> CrawlState | None:
        """Load a crawl state.

        Returns:
            The loaded CrawlState, or None if missing or unreadable
        """
        state_path = self.state_path(state_id)
        if not state_path.exists():
            return None

        try:
            data = json.loads(state_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("Crawl state is not a JSON object")
            return CrawlState.from_dict(data)
        except (OSError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring unreadable crawl state %s: %s", state_path, exc)
            return None

    def delete_state(self, state_id: str) -> bool:
        """Delete a crawl state.

        Returns:
            True if a file was deleted
        """
        state_path = self.state_path(state_id)
        if not state_path.exists():
            return False
        state_path.unlink()
        return True
