"""HTTP primitives used by the crawler.

Two layers live here:

1. :func:`http_get` - a thin, size-capped GET used for robots.txt and
   sitemap.xml. Non-2xx responses are returned, not raised.
2. :class:`SmartFetcher` - the static page fetcher used by the scrape
   operation: user-agent rotation, retries with linear backoff for
   transient failures, and detection of client-side rendered pages that need
   a browser.

Both use ``requests``; the blocking calls are pushed to a worker thread so
the crawl's event loop keeps running while a request is in flight.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Mapping

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_RETRIES = 2
_CHUNK_SIZE = 64 * 1024

USER_AGENTS = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15",
)

_DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

_RETRYABLE_STATUSES = {408, 429}

_SPA_INDICATORS = (
    'id="root"',
    'id="app"',
    'id="__next"',  # Next.js
    "data-reactroot",
    "ng-version",  # Angular
    "__next_data__",
    "nuxt",
)

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_RE = re.compile(r"<script", re.IGNORECASE)


class FetchError(Exception):
    """Raised when an HTTP request fails at the transport level."""


@dataclass(slots=True)
class HttpResponse:
    """Response of :func:`http_get`."""

    url: str
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    truncated: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


@dataclass(slots=True)
class FetchResult:
    """Result of a static page fetch.

    Attributes:
        url: The requested URL.
        final_url: The URL after redirects.
        html: Response body (empty on failure).
        status: HTTP status, 0 when no response was received.
        headers: Lowercased response headers.
        is_static_success: True when the HTML is usable without a browser.
        needs_browser: True when the page looks client-side rendered.
        error: Failure description, if any.
    """

    url: str
    final_url: str
    html: str = ""
    status: int = 0
    headers: Dict[str, str] = field(default_factory=dict)
    is_static_success: bool = False
    needs_browser: bool = False
    error: str | None = None


def _read_capped(response: requests.Response, max_bytes: int | None) -> tuple[bytes, bool]:
    """Read a streamed response body, stopping at ``max_bytes``."""
    chunks: list[bytes] = []
    total = 0
    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
        if not chunk:
            continue
        chunks.append(chunk)
        total += len(chunk)
        if max_bytes is not None and total >= max_bytes:
            return b"".join(chunks)[:max_bytes], True
    return b"".join(chunks), False


def _lower_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}


def http_get_sync(
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_bytes: int | None = None,
    session: requests.Session | None = None,
) -> HttpResponse:
    """Blocking GET returning status, headers and a size-capped body.

    Raises:
        FetchError: On connection errors, timeouts and other transport failures
    """
    requester = session or requests
    try:
        with requester.get(
            url,
            headers=dict(headers or {}),
            timeout=timeout_ms / 1000,
            allow_redirects=True,
            stream=True,
        ) as response:
            body, truncated = _read_capped(response, max_bytes)
            return HttpResponse(
                url=response.url or url,
                status=response.status_code,
                headers=_lower_headers(response.headers),
                body=body,
                truncated=truncated,
            )
    except requests.exceptions.Timeout as exc:
        raise FetchError(f"Request timed out: {url}") from exc
    except requests.RequestException as exc:
        raise FetchError(f"Request failed for {url}: {exc}") from exc


async def http_get(
    url: str,
    *,
    headers: Mapping[str, str] | None = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_bytes: int | None = None,
) -> HttpResponse:
    """Async wrapper around :func:`http_get_sync` run in a worker thread."""
    return await asyncio.to_thread(
        http_get_sync,
        url,
        headers=headers,
        timeout_ms=timeout_ms,
        max_bytes=max_bytes,
    )


def requires_javascript(html: str, headers: Mapping[str, str]) -> bool:
    """Heuristically decide whether a page needs JavaScript rendering.

    Heuristics used:
    - Very short documents without a <body> (loaders, JS redirects)
    - SPA framework markers with almost no visible text
    - JSON served where HTML was expected
    - Many script tags but little visible text
    """
    html_lower = html.lower()
    text = _TAG_RE.sub("", html).strip()

    if len(html) < 500 and "<body" not in html_lower:
        return True

    if any(indicator in html_lower for indicator in _SPA_INDICATORS) and len(text) < 200:
        return True

    if "application/json" in headers.get("content-type", ""):
        return True

    if len(_SCRIPT_RE.findall(html)) > 3 and len(text) < 300:
        return True

    return False


class SmartFetcher:
    """Static HTTP fetcher with user-agent rotation and retries.

    ``fetch`` is blocking; the scrape operation calls it through
    ``asyncio.to_thread``.
    """

    def __init__(
        self,
        *,
        user_agents: tuple[str, ...] = USER_AGENTS,
        session: requests.Session | None = None,
        backoff_seconds: float = 1.0,
    ) -> None:
        self._user_agents = user_agents
        self._index = 0
        self._lock = threading.Lock()
        self._session = session or requests.Session()
        self.backoff_seconds = backoff_seconds

    def _next_user_agent(self) -> str:
        with self._lock:
            user_agent = self._user_agents[self._index]
            self._index = (self._index + 1) % len(self._user_agents)
        return user_agent

    def _wait(self, attempt: int) -> None:
        if self.backoff_seconds > 0:
            time.sleep(self.backoff_seconds * (attempt + 1))

    def fetch(
        self,
        url: str,
        *,
        retries: int = DEFAULT_RETRIES,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_bytes: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> FetchResult:
        """Fetch a page, retrying transient failures.

        5xx, 408 and 429 responses and transport errors are retried up to
        ``retries`` times. Other non-2xx responses are returned immediately
        with ``error="HTTP <status>"``.

        Args:
            url: The URL to fetch.
            retries: Extra attempts for transient failures.
            timeout_ms: Per-attempt timeout in milliseconds.
            max_bytes: Optional body size cap.
            headers: Extra request headers.

        Returns:
            FetchResult describing the outcome. Never raises for network
            failures.
        """
        error = "Unknown fetch error"
        for attempt in range(retries + 1):
            request_headers = {
                "User-Agent": self._next_user_agent(),
                **_DEFAULT_HEADERS,
                **dict(headers or {}),
            }
            try:
                response = http_get_sync(
                    url,
                    headers=request_headers,
                    timeout_ms=timeout_ms,
                    max_bytes=max_bytes,
                    session=self._session,
                )
            except FetchError as exc:
                error = str(exc)
                if attempt < retries:
                    logger.debug("Retrying %s after transport error: %s", url, exc)
                    self._wait(attempt)
                    continue
                return FetchResult(url=url, final_url=url, error=error)

            if not response.ok:
                retryable = response.status >= 500 or response.status in _RETRYABLE_STATUSES
                if retryable and attempt < retries:
                    logger.debug("Retrying %s after HTTP %d", url, response.status)
                    self._wait(attempt)
                    continue
                return FetchResult(
                    url=url,
                    final_url=response.url,
                    status=response.status,
                    headers=response.headers,
                    error=f"HTTP {response.status}",
                )

            html = response.text
            needs_js = requires_javascript(html, response.headers)
            return FetchResult(
                url=url,
                final_url=response.url,
                html=html,
                status=response.status,
                headers=response.headers,
                is_static_success=not needs_js,
                needs_browser=needs_js,
                error="Detected client-side rendered content" if needs_js else None,
            )

        return FetchResult(url=url, final_url=url, error=error)

    def close(self) -> None:
        """Close the underlying HTTP session."""
        self._session.close()
