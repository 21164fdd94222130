"""Per-host request spacing."""

from __future__ import annotations

import asyncio
import random
import time
from collections import defaultdict


class RateLimiter:
    """Minimum interval per host plus a random jitter.

    The target site throttles bursts of navigations, so every page load is
    spaced by ``delay`` seconds and up to ``jitter`` extra seconds.
    """

    def __init__(self, *, delay: float = 2.0, jitter: float = 0.0) -> None:
        self.delay = delay
        self.jitter = jitter
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._last_request: dict[str, float] = defaultdict(lambda: 0.0)

    def _interval(self) -> float:
        if self.jitter <= 0:
            return self.delay
        return self.delay + random.uniform(0, self.jitter)

    async def wait_for_host(self, host: str) -> None:
        lock = self._locks[host]
        async with lock:
            last = self._last_request[host]
            if last:
                elapsed = time.monotonic() - last
                min_interval = self._interval()
                if elapsed < min_interval:
                    await asyncio.sleep(min_interval - elapsed)
            self._last_request[host] = time.monotonic()
