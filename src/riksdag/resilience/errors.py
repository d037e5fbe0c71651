"""Typed failures raised by the resilience layer and the API client."""
from typing import Optional


class RiksdagApiError(Exception):
    """Base class for every failure talking to the open-data API."""


class ClientResponseError(RiksdagApiError):
    """Terminal HTTP status (404, 413, 414, other 4xx). Never retried."""

    def __init__(self, status_code: int, url: str):
        self.status_code = status_code
        self.url = url
        super().__init__(f"HTTP {status_code} for {url}")


class InvalidResponseError(RiksdagApiError):
    """2xx response that is not JSON or cannot be decoded."""


class RetryExhaustedError(RiksdagApiError):
    """Retryable failures kept happening until the attempt budget ran out."""

    def __init__(self, message: str, attempts: int, status_code: Optional[int] = None):
        self.attempts = attempts
        self.status_code = status_code
        super().__init__(message)


class CircuitOpenError(RiksdagApiError):
    """Call rejected without touching the network because the circuit is open."""


class ApiUnavailableError(RiksdagApiError):
    """The last health probe failed; calls are short-circuited until it passes."""
