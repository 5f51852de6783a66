"""Token-aware markdown chunking with citation anchors.

Pages are split on markdown headings first, then blocks are packed into
chunks that stay under a token budget. Token counts are approximated at
four characters per token, which is close enough for budgeting prompts.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")

MIN_CHUNK_TOKENS = 50


@dataclass
class ContentChunk:
    """A slice of page content sized for a language model context.

    Attributes:
        id: Sequential identifier (chunk_1, chunk_2, ...)
        text: The chunk markdown
        approx_tokens: Approximate token count of ``text``
        heading_path: Headings enclosing the chunk, outermost first
        url: Page the chunk came from
        anchor: Slug of the nearest heading, for citations
    """
    id: str
    text: str
    approx_tokens: int
    heading_path: List[str] = field(default_factory=list)
    url: str = ""
    anchor: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "approx_tokens": self.approx_tokens,
            "heading_path": list(self.heading_path),
            "citation": {"url": self.url, "anchor": self.anchor},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentChunk":
        citation = data.get("citation") or {}
        return cls(
            id=data["id"],
            text=data["text"],
            approx_tokens=data.get("approx_tokens", approx_tokens(data["text"])),
            heading_path=list(data.get("heading_path", [])),
            url=citation.get("url", ""),
            anchor=citation.get("anchor"),
        )


def approx_tokens(text: str) -> int:
    """Approximate the token count of ``text``."""
    return max(1, -(-len(text) // 4))


def slugify(value: str) -> str:
    """Turn a heading into a URL fragment-style anchor."""
    slug = re.sub(r"[^\w\s-]", "", value.lower().strip())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:80]


def _split_blocks(markdown: str) -> List[tuple[List[str], str]]:
    blocks: List[tuple[List[str], str]] = []
    heading_path: List[str] = []
    current: List[str] = []
    current_path: List[str] = []

    def flush() -> None:
        text = "\n".join(current).strip()
        if text:
            blocks.append((current_path, text))
        current.clear()

    for line in markdown.split("\n"):
        match = _HEADING_RE.match(line)
        if match:
            flush()
            level = len(match.group(1))
            heading_path = heading_path[: level - 1] + [match.group(2).strip()]
            current_path = list(heading_path)
        elif not current:
            current_path = list(heading_path)
        current.append(line)
    flush()

    return blocks


def chunk_markdown(
    markdown: str,
    url: str,
    *,
    max_tokens: int = 1200,
    overlap_tokens: int = 0,
) -> List[ContentChunk]:
    """Split markdown into heading-aware chunks.

    Args:
        markdown: The page markdown
        url: The page URL used for citations
        max_tokens: Token budget per chunk (at least 50)
        overlap_tokens: Tokens of the previous chunk repeated at the start
            of the next one

    Returns:
        The chunks in document order
    """
    max_tokens = max(MIN_CHUNK_TOKENS, max_tokens)
    overlap_chars = max(0, overlap_tokens) * 4

    chunks: List[ContentChunk] = []
    buffer = ""
    buffer_path: List[str] = []
    last_tail = ""

    def emit() -> None:
        nonlocal last_tail
        text = buffer.strip()
        if not text:
            return
        anchor = slugify(buffer_path[-1]) if buffer_path else None
        chunks.append(ContentChunk(
            id=f"chunk_{len(chunks) + 1}",
            text=text,
            approx_tokens=approx_tokens(text),
            heading_path=list(buffer_path),
            url=url,
            anchor=anchor,
        ))
        last_tail = text[-overlap_chars:] if overlap_chars > 0 else ""

    for path, text in _split_blocks(markdown):
        candidate = f"{buffer}\n\n{text}".strip() if buffer else text
        if approx_tokens(candidate) <= max_tokens:
            buffer = candidate
            buffer_path = path
            continue

        emit()
        buffer = f"{last_tail}\n\n{text}".strip() if last_tail else text
        buffer_path = path
    emit()

    return chunks
