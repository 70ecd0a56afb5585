"""
Outbound pacing.

Token bucket used to pace calls to third-party services (chat webhook,
generative backend). Callers await ``acquire()`` before each call; the
bucket sleeps just long enough to stay under the configured rate.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("storyforge.common.rate_limiter")


class RateLimiter:
    """
    Async token bucket.

    Args:
        rate_per_second: Tokens refilled per second (must be positive)
        burst: Bucket capacity; the bucket starts full
        clock: Monotonic clock, injectable for tests
        sleep: Async sleep, injectable for tests
    """

    def __init__(
        self,
        rate_per_second: float,
        burst: int = 1,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        if burst < 1:
            raise ValueError("burst must be at least 1")

        self.rate = rate_per_second
        self.burst = burst
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self._tokens = float(burst)
        self._last = self._clock()
        self._lock = asyncio.Lock()

    @classmethod
    def from_interval(cls, seconds: float, **kwargs) -> "RateLimiter":
        """One call every ``seconds`` seconds."""
        return cls(rate_per_second=1.0 / seconds, **kwargs)

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._last = now

    async def acquire(self) -> float:
        """Take one token, sleeping if the bucket is empty.

        Returns:
            Seconds spent waiting
        """
        async with self._lock:
            self._refill()
            waited = 0.0
            if self._tokens < 1.0:
                waited = (1.0 - self._tokens) / self.rate
                logger.debug("Rate limit reached, waiting %.3fs", waited)
                await self._sleep(waited)
                self._refill()
                # The injected sleep may not advance the clock
                self._tokens = max(self._tokens, 1.0)
            self._tokens -= 1.0
            return waited
