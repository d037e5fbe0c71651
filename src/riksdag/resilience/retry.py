"""
Retry policy for outbound API calls.

The client runs an explicit loop and threads an immutable AttemptContext
through it; each retry produces a new context via AttemptContext.next(). The
policy decides how long to wait and whether the budget allows another try.
"""
import random
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        max_http_retries: Retries allowed for 429 and 5xx responses.
        max_network_retries: Retries allowed for timeouts / transport errors.
        max_total_attempts: Hard ceiling on attempts of any kind.
        base_delay: First backoff step for HTTP retries (seconds).
        network_base_delay: First backoff step for network retries; longer
            than base_delay since a dropped connection usually needs longer.
        max_delay: Cap on any single backoff.
        max_retry_after: Cap on a server-declared Retry-After wait.
        jitter: Fractional +/- spread applied to each backoff.
    """

    max_http_retries: int = 3
    max_network_retries: int = 2
    max_total_attempts: int = 6
    base_delay: float = 1.0
    network_base_delay: float = 2.0
    max_delay: float = 30.0
    max_retry_after: float = 120.0
    jitter: float = 0.25

    def backoff(self, retry_number: int, network: bool = False,
                rng: Optional[random.Random] = None) -> float:
        """Delay before retry number `retry_number` (0-based), with jitter, capped."""
        base = self.network_base_delay if network else self.base_delay
        delay = base * (2 ** retry_number)
        if self.jitter:
            delay *= 1 + (rng or random).uniform(-self.jitter, self.jitter)
        return max(0.0, min(self.max_delay, delay))

    def can_retry_http(self, ctx: "AttemptContext") -> bool:
        return (
            ctx.http_retries < self.max_http_retries
            and ctx.attempt < self.max_total_attempts
        )

    def can_retry_network(self, ctx: "AttemptContext") -> bool:
        return (
            ctx.network_retries < self.max_network_retries
            and ctx.attempt < self.max_total_attempts
        )


@dataclass(frozen=True)
class AttemptContext:
    """Where a call is in its retry budget. `attempt` counts attempts made."""

    attempt: int = 0
    http_retries: int = 0
    network_retries: int = 0
    total_delay: float = 0.0

    def started(self) -> "AttemptContext":
        return replace(self, attempt=self.attempt + 1)

    def next(self, delay: float, network: bool = False) -> "AttemptContext":
        if network:
            return replace(
                self,
                network_retries=self.network_retries + 1,
                total_delay=self.total_delay + delay,
            )
        return replace(
            self,
            http_retries=self.http_retries + 1,
            total_delay=self.total_delay + delay,
        )


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Seconds to wait according to a Retry-After header.

    Accepts delta-seconds ("120") or an HTTP-date. Returns None when the
    header is absent or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (when - now).total_seconds())
