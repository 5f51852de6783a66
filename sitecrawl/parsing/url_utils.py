"""URL canonicalization and validation for the site crawler.

Every URL that enters the crawl frontier passes through :func:`normalize_url`
so that trivially different spellings of the same page share one dedup key.

Normalization rules:
- Lowercase scheme and host
- Strip the fragment
- Drop default ports (80 for http, 443 for https)
- Remove well-known tracking query parameters (utm_*, fbclid, gclid, ...)
- Sort the remaining query parameters by key
- Strip trailing slashes from non-root paths

Examples:
    >>> normalize_url("HTTPS://Example.com:443/docs/?utm_source=x&b=2&a=1#top")
    'https://example.com/docs?a=1&b=2'
    >>> is_http_url("mailto:someone@example.com")
    False
"""

from __future__ import annotations

import re
from typing import NamedTuple
from urllib.parse import parse_qsl, urldefrag, urlencode, urljoin, urlsplit, urlunsplit

_TRACKING_PARAMS = (
    re.compile(r"^utm_", re.IGNORECASE),
    re.compile(r"^fbclid$", re.IGNORECASE),
    re.compile(r"^gclid$", re.IGNORECASE),
    re.compile(r"^dclid$", re.IGNORECASE),
    re.compile(r"^msclkid$", re.IGNORECASE),
    re.compile(r"^mc_cid$", re.IGNORECASE),
    re.compile(r"^mc_eid$", re.IGNORECASE),
)

_DEFAULT_PORTS = {"http": 80, "https": 443}

_SKIP_SCHEMES = ("javascript", "mailto", "tel", "data", "file", "ftp")

_SKIP_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico",  # Images
    ".mp4", ".webm", ".avi", ".mov", ".wmv",  # Video
    ".mp3", ".wav", ".ogg", ".flac",  # Audio
    ".zip", ".tar", ".gz", ".rar", ".7z",  # Archives
    ".exe", ".dmg", ".msi", ".deb", ".rpm",  # Executables
    ".css", ".js", ".woff", ".woff2", ".ttf", ".eot",  # Web assets
)


class InvalidUrlError(ValueError):
    """Raised when a string cannot be parsed as an absolute URL."""


class ParsedURL(NamedTuple):
    """Absolute URL split into the components used for canonicalization."""
    scheme: str
    userinfo: str
    host: str
    port: int | None
    path: str
    query: str


def parse_url(url: str) -> ParsedURL:
    """Parse an absolute URL.

    Args:
        url: The URL to parse

    Returns:
        ParsedURL with a lowercased scheme and host

    Raises:
        InvalidUrlError: If the URL is relative, has no host, or has a
            malformed port or IPv6 literal
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidUrlError(f"Invalid URL: {url!r}")

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as exc:
        raise InvalidUrlError(f"Invalid URL: {url!r} ({exc})") from exc

    scheme = parts.scheme.lower()
    host = parts.hostname or ""
    if not scheme or not host:
        raise InvalidUrlError(f"Invalid URL: {url!r}")

    # hostname drops the IPv6 brackets
    if ":" in host:
        host = f"[{host}]"

    userinfo = ""
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"

    return ParsedURL(
        scheme=scheme,
        userinfo=userinfo,
        host=host.lower(),
        port=port,
        path=parts.path,
        query=parts.query,
    )


def _netloc(parsed: ParsedURL) -> str:
    netloc = parsed.host
    if parsed.port is not None and _DEFAULT_PORTS.get(parsed.scheme) != parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    if parsed.userinfo:
        netloc = f"{parsed.userinfo}@{netloc}"
    return netloc


def _is_tracking_param(key: str) -> bool:
    return any(pattern.search(key) for pattern in _TRACKING_PARAMS)


def normalize_url(url: str) -> str:
    """Canonicalize a URL for deduplication.

    The result is stable: normalizing an already normalized URL returns it
    unchanged.

    Args:
        url: The absolute URL to normalize

    Returns:
        The canonical URL string

    Raises:
        InvalidUrlError: If the URL cannot be parsed
    """
    parsed = parse_url(url)

    path = parsed.path
    if parsed.scheme in _DEFAULT_PORTS and not path:
        path = "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = ""
    if parsed.query:
        params = [
            (key, value)
            for key, value in parse_qsl(parsed.query, keep_blank_values=True)
            if not _is_tracking_param(key)
        ]
        params.sort(key=lambda pair: pair[0])
        query = urlencode(params)

    return urlunsplit((parsed.scheme, _netloc(parsed), path, query, ""))


def dedupe_key(url: str) -> str:
    """Return the frontier key for a URL.

    Falls back to the fragment-stripped input when the URL cannot be
    normalized, so callers never have to handle an exception here.
    """
    try:
        return normalize_url(url)
    except InvalidUrlError:
        return url.split("#", 1)[0]


def is_http_url(url: str) -> bool:
    """Check if a URL is a parseable HTTP/HTTPS URL with a host.

    Args:
        url: The URL to validate

    Returns:
        True if the URL is valid HTTP/HTTPS, False otherwise
    """
    try:
        parsed = parse_url(url)
    except InvalidUrlError:
        return False
    return parsed.scheme in ("http", "https")


def get_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL, dropping default ports.

    Raises:
        InvalidUrlError: If the URL cannot be parsed
    """
    parsed = parse_url(url)
    return f"{parsed.scheme}://{_netloc(parsed._replace(userinfo=''))}"


def host_of(url: str) -> str:
    """Return ``host[:port]`` for a URL (the per-host scheduling key)."""
    parsed = parse_url(url)
    return _netloc(parsed._replace(userinfo=""))


def is_same_origin(url: str, origin: str) -> bool:
    """Check that ``url`` starts with ``origin`` on a component boundary.

    A bare prefix test would let ``https://example.com.evil.net`` through for
    ``https://example.com``; the character following the origin must start
    the path, query or fragment.

    Examples:
        >>> is_same_origin("https://example.com/docs", "https://example.com")
        True
        >>> is_same_origin("https://example.com.evil.net/", "https://example.com")
        False
    """
    if not url.startswith(origin):
        return False
    rest = url[len(origin):]
    return not rest or rest[0] in "/?#"


def resolve_url(base_url: str, relative_url: str) -> str:
    """Resolve a relative URL against a base URL and drop the fragment.

    Examples:
        >>> resolve_url("https://example.com/docs/guide", "../api/#top")
        'https://example.com/api/'
    """
    return urldefrag(urljoin(base_url, relative_url))[0]


def should_skip_url(url: str) -> tuple[bool, str]:
    """Check if a raw href should be ignored during link extraction.

    Returns:
        Tuple of (should_skip, reason)
    """
    if not url or not url.strip():
        return True, "Empty URL"

    if url.startswith("#"):
        return True, "Fragment-only URL"

    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return True, "Unparsable URL"

    if parts.scheme.lower() in _SKIP_SCHEMES:
        return True, f"Non-HTTP scheme: {parts.scheme.lower()}"

    path_lower = parts.path.lower()
    for ext in _SKIP_EXTENSIONS:
        if path_lower.endswith(ext):
            return True, f"Skipped extension: {ext}"

    return False, ""
