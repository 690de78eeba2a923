"""
Rate limiting for outbound API requests.

Keeps each API within its request quota and, where an API asks for it,
a minimum gap between two successive requests.
"""

import asyncio
import time
from collections import defaultdict, deque
from dataclasses import dataclass, replace
from typing import Optional
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    """At most `requests` per `period_seconds`, spaced by `min_spacing` seconds."""
    requests: int
    period_seconds: float
    min_spacing: float = 0.0


class RateLimiter:
    """
    Sliding-window limiter keyed by API name.

    One lock per API serializes waiters, so requests are granted in
    arrival order.
    """

    DEFAULT_LIMITS = {
        "world_news": RateLimit(60, 60, min_spacing=0.1),
        "deepl": RateLimit(20, 1),
        "rss": RateLimit(10, 1),
        "default": RateLimit(60, 60),
    }

    def __init__(self):
        self._granted: dict[str, deque[float]] = defaultdict(deque)
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._overrides: dict[str, RateLimit] = {}

    def limit_for(self, api: str) -> RateLimit:
        if api in self._overrides:
            return self._overrides[api]
        return self.DEFAULT_LIMITS.get(api, self.DEFAULT_LIMITS["default"])

    def set_limit(self, api: str, requests: int, period_seconds: float):
        """Override the quota of an API, keeping its spacing."""
        self._overrides[api] = replace(
            self.limit_for(api), requests=requests, period_seconds=period_seconds
        )

    def set_spacing(self, api: str, seconds: float):
        """Override the minimum gap between two requests to an API."""
        self._overrides[api] = replace(self.limit_for(api), min_spacing=seconds)

    def _prune(self, api: str, now: float, period: float) -> deque[float]:
        granted = self._granted[api]
        while granted and granted[0] <= now - period:
            granted.popleft()
        return granted

    def _delay(self, api: str, now: float) -> float:
        """Seconds until a request to `api` may be granted."""
        limit = self.limit_for(api)
        granted = self._prune(api, now, limit.period_seconds)

        if len(granted) >= limit.requests:
            return granted[0] + limit.period_seconds - now
        if granted and limit.min_spacing > 0:
            return max(0.0, granted[-1] + limit.min_spacing - now)
        return 0.0

    async def acquire(self, api: str, timeout: Optional[float] = 30.0) -> bool:
        """
        Wait for a request slot.

        Args:
            api: API name to limit on
            timeout: Max seconds to wait (None = wait forever)

        Returns:
            True once the slot is granted, False if it would take longer
            than the timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        async with self._locks[api]:
            while True:
                now = time.monotonic()
                delay = self._delay(api, now)

                if delay <= 0:
                    self._granted[api].append(now)
                    return True

                if deadline is not None and now + delay > deadline:
                    logger.warning(f"Rate limit for {api} exceeds timeout (needs {delay:.1f}s)")
                    return False

                logger.debug(f"Rate limited for {api}, waiting {delay:.2f}s")
                await asyncio.sleep(delay)

    async def wait_if_needed(self, api: str):
        """Wait for a request slot without a timeout."""
        await self.acquire(api, timeout=None)

    def get_status(self, api: str) -> dict:
        """Current usage of one API."""
        limit = self.limit_for(api)
        used = len(self._prune(api, time.monotonic(), limit.period_seconds))

        return {
            "api": api,
            "max_requests": limit.requests,
            "period_seconds": limit.period_seconds,
            "min_spacing_seconds": limit.min_spacing,
            "current_requests": used,
            "available": limit.requests - used,
        }

    def get_all_status(self) -> list[dict]:
        """Usage of every API seen or configured so far."""
        apis = set(self._granted) | set(self._overrides)
        return [self.get_status(api) for api in sorted(apis)]


# Process-wide limiter shared by every adapter
_global_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _global_limiter
    if _global_limiter is None:
        _global_limiter = RateLimiter()
    return _global_limiter
