"""
Async client for the Riksdag open-data API.

Every GET goes through the same gate, in order: health check, circuit
breaker, rate limiter. Retryable failures (timeouts, 429, 5xx) are handled by
an explicit retry loop; everything else surfaces as a typed RiksdagApiError.
"""
import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from riksdag.config import Settings, SyncConfig
from riksdag.resilience.circuit_breaker import CircuitBreaker
from riksdag.resilience.errors import (
    ClientResponseError,
    InvalidResponseError,
    RetryExhaustedError,
)
from riksdag.resilience.health import HealthMonitor
from riksdag.resilience.rate_limiter import RateLimiter
from riksdag.resilience.retry import AttemptContext, RetryPolicy, parse_retry_after

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Decoded JSON body of a successful call plus timing."""

    url: str
    payload: Any
    status_code: int
    latency: float
    attempts: int


class RiksdagClient:
    """
    Resilient JSON fetcher over httpx.AsyncClient.

    Use as an async context manager, or call aclose() when done, if the
    client created its own httpx.AsyncClient.
    """

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        *,
        base_url: str = "https://data.riksdagen.se",
        timeout: float = 30.0,
        rate_limiter: Optional[RateLimiter] = None,
        breaker: Optional[CircuitBreaker] = None,
        retry_policy: Optional[RetryPolicy] = None,
        health: Optional[HealthMonitor] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            http: Shared httpx.AsyncClient. Defaults to a new one owned by
                this instance (closed by aclose()).
            base_url: API root, used by the health probe.
            timeout: Hard per-request timeout in seconds.
            rate_limiter / breaker / retry_policy: Resilience components;
                defaults are created when omitted.
            health: Optional HealthMonitor consulted before every attempt.
            sleep: Awaitable sleep used for backoff (patched in tests).
            rng: Random source for backoff jitter.
        """
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(follow_redirects=True)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter()
        self.breaker = breaker or CircuitBreaker()
        self.retry_policy = retry_policy or RetryPolicy()
        self.health = health
        self._sleep = sleep
        self._rng = rng

    @classmethod
    def from_settings(cls, settings: Settings, config: SyncConfig) -> "RiksdagClient":
        """Build a fully wired client (including health probe) from settings."""
        client = cls(
            base_url=settings.api_base_url,
            timeout=settings.http_timeout_seconds,
            rate_limiter=RateLimiter(settings.requests_per_second),
            breaker=CircuitBreaker(
                failure_threshold=settings.breaker_failure_threshold,
                recovery_timeout=settings.breaker_recovery_timeout_seconds,
                success_threshold=settings.breaker_success_threshold,
            ),
            retry_policy=RetryPolicy(
                max_http_retries=settings.max_http_retries,
                max_network_retries=settings.max_network_retries,
                max_total_attempts=settings.max_total_attempts,
                base_delay=settings.retry_base_delay_seconds,
                network_base_delay=settings.retry_network_base_delay_seconds,
                max_delay=settings.retry_max_delay_seconds,
            ),
        )
        probe_url = client.base_url + config.health_probe_path
        client.health = HealthMonitor(
            lambda: client.probe(probe_url),
            interval=settings.health_check_interval_seconds,
        )
        return client

    async def __aenter__(self) -> "RiksdagClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def probe(self, url: str) -> bool:
        """Single cheap GET, no retries. Healthy means any non-5xx answer."""
        try:
            response = await self._http.get(url, timeout=min(self.timeout, 10.0))
        except httpx.HTTPError as exc:
            logger.warning("Health probe failed: %s", exc)
            return False
        return response.status_code < 500

    async def fetch_json(self, url: str) -> FetchResult:
        """
        GET a URL and decode its JSON body, retrying transient failures.

        Raises:
            ApiUnavailableError: health probe is failing.
            CircuitOpenError: circuit breaker rejected the call.
            ClientResponseError: 404, 413, 414 or other 4xx (not retried).
            InvalidResponseError: body is not JSON.
            RetryExhaustedError: retry budget or hard attempt ceiling reached.
        """
        policy = self.retry_policy
        ctx = AttemptContext()

        while True:
            if self.health is not None:
                await self.health.ensure_healthy()
            self.breaker.allow_request()
            await self.rate_limiter.acquire()

            ctx = ctx.started()
            started = time.monotonic()
            try:
                response = await self._http.get(url, timeout=self.timeout)
            except httpx.TransportError as exc:
                self.breaker.record_failure()
                if not policy.can_retry_network(ctx):
                    raise RetryExhaustedError(
                        f"Network failure after {ctx.attempt} attempts: {exc!r}",
                        attempts=ctx.attempt,
                    ) from exc
                delay = policy.backoff(ctx.network_retries, network=True, rng=self._rng)
                logger.warning(
                    "Network error fetching %s (%s); retry in %.1fs", url, exc, delay
                )
                await self._sleep(delay)
                ctx = ctx.next(delay, network=True)
                continue

            latency = time.monotonic() - started
            status = response.status_code

            if status == 429:
                # Throttling says nothing about upstream health.
                self.breaker.release_trial()
                if not policy.can_retry_http(ctx):
                    raise RetryExhaustedError(
                        f"Still rate limited after {ctx.attempt} attempts: {url}",
                        attempts=ctx.attempt,
                        status_code=status,
                    )
                retry_after = parse_retry_after(response.headers.get("Retry-After"))
                if retry_after is not None:
                    delay = min(retry_after, policy.max_retry_after)
                    # The limiter enforces the wait on the next acquire().
                    self.rate_limiter.impose_cooldown(delay)
                else:
                    delay = policy.backoff(ctx.http_retries, rng=self._rng)
                    await self._sleep(delay)
                logger.warning("HTTP 429 for %s; waiting %.1fs", url, delay)
                ctx = ctx.next(delay)
                continue

            if status >= 500:
                self.breaker.record_failure()
                if not policy.can_retry_http(ctx):
                    raise RetryExhaustedError(
                        f"HTTP {status} after {ctx.attempt} attempts: {url}",
                        attempts=ctx.attempt,
                        status_code=status,
                    )
                delay = policy.backoff(ctx.http_retries, rng=self._rng)
                logger.warning("HTTP %d for %s; retry in %.1fs", status, url, delay)
                await self._sleep(delay)
                ctx = ctx.next(delay)
                continue

            if status >= 400:
                # The server answered; a bad request is not an outage.
                self.breaker.record_success()
                logger.error("HTTP %d for %s (not retried)", status, url)
                raise ClientResponseError(status, url)

            content_type = response.headers.get("Content-Type", "")
            if "json" not in content_type.lower():
                self.breaker.record_failure()
                raise InvalidResponseError(
                    f"Expected JSON from {url}, got {content_type or 'no content-type'}"
                )
            try:
                payload = response.json() if response.content else None
            except ValueError as exc:
                self.breaker.record_failure()
                raise InvalidResponseError(f"Malformed JSON from {url}: {exc}") from exc

            self.breaker.record_success()
            return FetchResult(
                url=url,
                payload=payload,
                status_code=status,
                latency=latency,
                attempts=ctx.attempt,
            )
