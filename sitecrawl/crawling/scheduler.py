"""Per-host admission control for polite crawling.

The scheduler limits how hard a single server is hit while a crawl batch is
running:

1. Concurrency cap: at most ``per_host_concurrency`` operations in flight
   per host
2. Request spacing: consecutive operation *starts* on a host are at least
   ``min_delay_ms`` apart

Admission is a short polling loop. Counters are read and updated with no
``await`` in between, so on a single event loop admit and release are atomic
per host.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Awaitable, Callable, Dict, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL_MS = 25


class HostScheduler:
    """Throttles operations per host.

    Usage:
        scheduler = HostScheduler(per_host_concurrency=2, min_delay_ms=500)
        page = await scheduler.run("example.com", lambda: scrape(url))
    """

    def __init__(
        self,
        per_host_concurrency: int,
        min_delay_ms: int = 0,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ) -> None:
        if per_host_concurrency < 1:
            raise ValueError("per_host_concurrency must be at least 1")
        if min_delay_ms < 0:
            raise ValueError("min_delay_ms must not be negative")
        if poll_interval_ms < 1:
            raise ValueError("poll_interval_ms must be at least 1")
        self.per_host_concurrency = per_host_concurrency
        self.min_delay_ms = min_delay_ms
        self.poll_interval_ms = poll_interval_ms
        self._inflight: Dict[str, int] = defaultdict(int)
        self._last_start: Dict[str, float] = {}

    def inflight(self, host: str) -> int:
        """Number of operations currently running for ``host``."""
        return self._inflight.get(host, 0)

    def _try_admit(self, host: str) -> float:
        """Admit the caller or return how many seconds to wait before retrying."""
        now = time.monotonic()
        last_start = self._last_start.get(host)
        wait_for_delay = 0.0
        if last_start is not None:
            wait_for_delay = max(0.0, self.min_delay_ms / 1000 - (now - last_start))

        if self._inflight[host] < self.per_host_concurrency and wait_for_delay == 0:
            self._inflight[host] += 1
            self._last_start[host] = now
            return 0.0

        poll = self.poll_interval_ms / 1000
        return min(wait_for_delay, poll) if wait_for_delay > 0 else poll

    async def acquire(self, host: str) -> None:
        """Wait until an operation for ``host`` may start."""
        while True:
            wait = self._try_admit(host)
            if wait == 0:
                return
            await asyncio.sleep(wait)

    def release(self, host: str) -> None:
        """Mark one operation for ``host`` as finished."""
        remaining = self._inflight.get(host, 0) - 1
        if remaining <= 0:
            self._inflight.pop(host, None)
        else:
            self._inflight[host] = remaining

    async def run(self, host: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` once ``host`` admits it.

        The slot is released whether the operation succeeds or raises.
        """
        await self.acquire(host)
        logger.debug("Admitted request for %s (%d in flight)", host, self.inflight(host))
        try:
            return await operation()
        finally:
            self.release(host)
