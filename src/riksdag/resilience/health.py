"""
Throttled API health probe.

The probe runs at most once per interval. While the last result is unhealthy,
every call is short-circuited with ApiUnavailableError, independently of the
circuit breaker.
"""
import logging
import time
from datetime import datetime
from typing import Awaitable, Callable, Optional

from riksdag.resilience.errors import ApiUnavailableError

logger = logging.getLogger(__name__)


class HealthMonitor:
    def __init__(
        self,
        probe: Callable[[], Awaitable[bool]],
        interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._probe = probe
        self.interval = interval
        self._clock = clock
        self._last_check: Optional[float] = None
        self.is_healthy = True
        self.last_checked_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    async def check(self, force: bool = False) -> bool:
        """Run the probe unless one ran less than `interval` seconds ago."""
        now = self._clock()
        if not force and self._last_check is not None and now - self._last_check < self.interval:
            return self.is_healthy

        self._last_check = now
        self.last_checked_at = datetime.utcnow()
        try:
            healthy = bool(await self._probe())
            self.last_error = None if healthy else "Health probe reported unhealthy"
        except Exception as exc:
            healthy = False
            self.last_error = str(exc)

        if healthy != self.is_healthy:
            logger.warning("API health changed: %s", "healthy" if healthy else "unhealthy")
        self.is_healthy = healthy
        return healthy

    async def ensure_healthy(self) -> None:
        """
        Raises:
            ApiUnavailableError: the most recent probe failed.
        """
        if not await self.check():
            raise ApiUnavailableError(
                f"Riksdag API unavailable: {self.last_error or 'health check failed'}"
            )
