"""
Sliding one-second window rate limiter for asyncio callers.

At most `max_per_second` calls are let through in any rolling second. A
server-declared cooldown (from a 429 Retry-After) overrides the window: no
call proceeds until it has expired.
"""
import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 1.0


class RateLimiter:
    def __init__(
        self,
        max_per_second: int = 5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_per_second = max(1, max_per_second)
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()
        self._cooldown_until = 0.0

    def impose_cooldown(self, seconds: float) -> None:
        """Block all calls for `seconds` from now (never shortens an existing one)."""
        until = self._clock() + max(0.0, seconds)
        if until > self._cooldown_until:
            logger.info("Server requested cooldown of %.1fs", seconds)
            self._cooldown_until = until

    def cooldown_remaining(self) -> float:
        return max(0.0, self._cooldown_until - self._clock())

    async def acquire(self) -> None:
        """Wait until a call is permitted, then record it."""
        while True:
            now = self._clock()
            if now < self._cooldown_until:
                await self._sleep(self._cooldown_until - now)
                continue

            cutoff = now - WINDOW_SECONDS
            while self._timestamps and self._timestamps[0] <= cutoff:
                self._timestamps.popleft()

            if len(self._timestamps) < self.max_per_second:
                self._timestamps.append(now)
                return

            wait = self._timestamps[0] + WINDOW_SECONDS - now
            logger.debug("Rate limit reached (%d/s); sleeping %.3fs", self.max_per_second, wait)
            await self._sleep(max(wait, 0.0))
