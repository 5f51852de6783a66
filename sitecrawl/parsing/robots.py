"""Robots.txt parsing and compliance checking.

This module provides functionality to parse robots.txt files and check
whether URLs are allowed to be crawled according to the rules.

Features:
- Group directives into user-agent sections
- Select the most specific section for our crawler name
- Longest-prefix matching across Allow and Disallow rules
- Respect Crawl-delay directives (exposed in milliseconds)
- Fail soft: a missing or unreachable robots.txt allows everything

Reference: https://www.robotstxt.org/robotstxt.html
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List

from .fetcher import HttpResponse, http_get
from .url_utils import InvalidUrlError, get_origin, parse_url

logger = logging.getLogger(__name__)

HttpGet = Callable[..., Awaitable[HttpResponse]]

ROBOTS_TIMEOUT_MS = 10_000
ROBOTS_MAX_BYTES = 500_000


@dataclass
class RobotsRuleSet:
    """Rules selected for our user agent.

    Attributes:
        disallow: Disallowed path prefixes
        allow: Allowed path prefixes
        crawl_delay_ms: Crawl-delay in milliseconds (if specified)
    """
    disallow: List[str] = field(default_factory=list)
    allow: List[str] = field(default_factory=list)
    crawl_delay_ms: int | None = None

    def is_allowed(self, path: str) -> bool:
        """Check if a URL path is allowed by this ruleset.

        The longest matching prefix wins, whichever list it came from.
        Ties and paths matching no rule are allowed.

        Args:
            path: The path portion of the URL to check

        Returns:
            True if the path is allowed, False if disallowed
        """
        best_allowed = True
        best_length = -1

        for prefix in self.allow:
            if prefix and path.startswith(prefix) and len(prefix) > best_length:
                best_allowed = True
                best_length = len(prefix)

        for prefix in self.disallow:
            if prefix and path.startswith(prefix) and len(prefix) > best_length:
                best_allowed = False
                best_length = len(prefix)

        return best_allowed


@dataclass
class RobotsTxt:
    """Parsed robots.txt for a single origin.

    Attributes:
        origin: The origin (scheme://host[:port]) the file was fetched from
        rules: The ruleset that applies to our user agent
    """
    origin: str
    rules: RobotsRuleSet = field(default_factory=RobotsRuleSet)


@dataclass
class _Section:
    agents: List[str] = field(default_factory=list)
    disallow: List[str] = field(default_factory=list)
    allow: List[str] = field(default_factory=list)
    crawl_delay: float | None = None

    @property
    def has_rules(self) -> bool:
        return bool(self.disallow or self.allow)


def _matches_user_agent(header: str, user_agent: str) -> bool:
    token = header.strip().lower()
    if not token:
        return False
    if token == "*":
        return True
    return token in user_agent.strip().lower()


def _select_section(sections: List[_Section], user_agent: str) -> _Section | None:
    matching = [
        section for section in sections
        if any(_matches_user_agent(agent, user_agent) for agent in section.agents)
    ]
    for section in matching:
        if any(agent.strip() != "*" for agent in section.agents):
            return section
    for section in matching:
        if any(agent.strip() == "*" for agent in section.agents):
            return section
    return None


def parse_robots_txt(origin: str, content: str, user_agent: str) -> RobotsTxt:
    """Parse robots.txt content and select the rules for ``user_agent``.

    Consecutive ``User-agent`` lines share one section; a ``User-agent`` line
    only opens a new section once the current one has an Allow or Disallow.
    A section naming our crawler wins over a ``*`` section; among equals the
    first in document order is used.

    Args:
        origin: The origin the file belongs to
        content: The text content of the robots.txt file
        user_agent: Our crawler name

    Returns:
        Parsed RobotsTxt object
    """
    sections: List[_Section] = []
    current: _Section | None = None

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        directive, _, value = line.partition(":")
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            if current is None or current.has_rules:
                current = _Section()
                sections.append(current)
            current.agents.append(value)
            continue

        if current is None:
            continue

        if directive == "disallow":
            current.disallow.append(value)
        elif directive == "allow":
            current.allow.append(value)
        elif directive == "crawl-delay":
            try:
                delay = float(value)
            except ValueError:
                continue
            if delay >= 0:
                current.crawl_delay = delay

    best = _select_section(sections, user_agent)
    if best is None:
        return RobotsTxt(origin=origin)

    crawl_delay_ms = None
    if best.crawl_delay is not None:
        crawl_delay_ms = round(best.crawl_delay * 1000)

    return RobotsTxt(
        origin=origin,
        rules=RobotsRuleSet(
            disallow=list(best.disallow),
            allow=list(best.allow),
            crawl_delay_ms=crawl_delay_ms,
        ),
    )


def is_allowed_by_robots(url: str, robots: RobotsTxt) -> bool:
    """Check a URL against a parsed robots.txt.

    URLs on a different origin than the robots file are rejected outright.

    Args:
        url: The absolute URL to check
        robots: The parsed robots.txt

    Returns:
        True if the URL may be fetched
    """
    try:
        parsed = parse_url(url)
        origin = get_origin(url)
    except InvalidUrlError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    if origin != robots.origin:
        return False
    return robots.rules.is_allowed(parsed.path or "/")


async def fetch_robots_txt(
    origin: str,
    user_agent: str,
    *,
    http_get: HttpGet = http_get,
) -> RobotsTxt | None:
    """Fetch and parse ``{origin}/robots.txt``.

    Never raises: non-2xx responses and network failures return None, which
    callers treat as "everything allowed".

    Args:
        origin: The site origin
        user_agent: Our crawler name, sent as the User-Agent header
        http_get: HTTP primitive used for the request

    Returns:
        The parsed RobotsTxt, or None
    """
    robots_url = f"{origin.rstrip('/')}/robots.txt"
    try:
        response = await http_get(
            robots_url,
            headers={"User-Agent": user_agent, "Accept": "text/plain,*/*"},
            timeout_ms=ROBOTS_TIMEOUT_MS,
            max_bytes=ROBOTS_MAX_BYTES,
        )
    except Exception as exc:
        logger.warning("Could not fetch %s: %s", robots_url, exc)
        return None

    if not response.ok:
        logger.debug("No robots.txt at %s (HTTP %d)", robots_url, response.status)
        return None

    robots = parse_robots_txt(origin, response.text, user_agent)
    logger.info(
        "Loaded robots.txt for %s: %d disallow, %d allow, crawl-delay=%s",
        origin,
        len(robots.rules.disallow),
        len(robots.rules.allow),
        robots.rules.crawl_delay_ms,
    )
    return robots


class RobotsChecker:
    """Caching robots.txt checker for crawls that touch several origins.

    Usage:
        checker = RobotsChecker("sitecrawl")
        await checker.load("https://example.com/")
        if checker.is_allowed("https://example.com/page"):
            # crawl the page
    """

    def __init__(self, user_agent: str = "sitecrawl", *, http_get: HttpGet = http_get):
        self.user_agent = user_agent
        self._http_get = http_get
        self._cache: Dict[str, RobotsTxt | None] = {}

    async def load(self, url: str) -> RobotsTxt | None:
        """Fetch robots.txt for the URL's origin once and cache the outcome."""
        origin = get_origin(url)
        if origin not in self._cache:
            self._cache[origin] = await fetch_robots_txt(
                origin, self.user_agent, http_get=self._http_get
            )
        return self._cache[origin]

    def set_robots_txt(self, url: str, content: str) -> RobotsTxt:
        """Parse and cache robots.txt content for the URL's origin."""
        origin = get_origin(url)
        robots = parse_robots_txt(origin, content, self.user_agent)
        self._cache[origin] = robots
        return robots

    def is_allowed(self, url: str) -> bool:
        """Check a URL; origins without a cached robots.txt are allowed."""
        try:
            robots = self._cache.get(get_origin(url))
        except InvalidUrlError:
            return False
        if robots is None:
            return True
        return is_allowed_by_robots(url, robots)

    def get_crawl_delay_ms(self, url: str) -> int | None:
        """Get the cached crawl delay for the URL's origin."""
        robots = self._cache.get(get_origin(url))
        if robots is None:
            return None
        return robots.rules.crawl_delay_ms

    def clear_cache(self) -> None:
        """Clear the robots.txt cache."""
        self._cache.clear()
