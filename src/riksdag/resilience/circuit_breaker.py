"""
Three-state circuit breaker.

  closed     requests flow; failures count up, successes decay the count by
             one; reaching failure_threshold opens the circuit
  open       requests are rejected until recovery_timeout has passed since
             the last failure, then the breaker moves to half_open
  half_open  up to half_open_max_calls trial requests; success_threshold
             successes close it again, any failure reopens it. Trial slots
             that were never settled are re-armed after recovery_timeout

State lives in process memory and starts fresh with every process.
"""
import logging
import time
from enum import Enum
from typing import Callable, Optional

from riksdag.resilience.errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 2,
        half_open_max_calls: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = max(1, failure_threshold)
        self.recovery_timeout = recovery_timeout
        self.success_threshold = max(1, success_threshold)
        self.half_open_max_calls = half_open_max_calls or self.success_threshold
        self._clock = clock

        self._state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self._half_open_calls = 0
        self._trials_armed_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        """Current state, moving open → half_open once the timeout has passed."""
        if (
            self._state is CircuitState.OPEN
            and self.last_failure_time is not None
            and self._clock() - self.last_failure_time >= self.recovery_timeout
        ):
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    def allow_request(self) -> None:
        """
        Gate one outbound call.

        Raises:
            CircuitOpenError: circuit is open, or half_open with no trial
                slots left.
        """
        state = self.state
        if state is CircuitState.OPEN:
            raise CircuitOpenError(
                f"Circuit open after {self.failure_count} failures; "
                f"retry after {self.recovery_timeout:.0f}s"
            )
        if state is CircuitState.HALF_OPEN:
            if self._half_open_calls >= self.half_open_max_calls:
                if self._clock() - self._trials_armed_at < self.recovery_timeout:
                    raise CircuitOpenError("Circuit half-open; trial calls exhausted")
                logger.info("Re-arming half-open trial calls")
                self._half_open_calls = 0
                self._trials_armed_at = self._clock()
            self._half_open_calls += 1

    def release_trial(self) -> None:
        """Give back a half-open trial slot for a call that proved nothing (e.g. 429)."""
        if self._state is CircuitState.HALF_OPEN and self._half_open_calls > 0:
            self._half_open_calls -= 1

    def record_success(self) -> None:
        state = self.state
        if state is CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.success_threshold:
                self._transition(CircuitState.CLOSED)
        elif self.failure_count > 0:
            self.failure_count -= 1

    def record_failure(self) -> None:
        self.last_failure_time = self._clock()
        state = self.state
        if state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return
        self.failure_count += 1
        if state is CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
        }

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self._state:
            return
        logger.warning("Circuit breaker %s → %s", self._state.value, new_state.value)
        self._state = new_state
        self.success_count = 0
        self._half_open_calls = 0
        self._trials_armed_at = self._clock()
        if new_state is CircuitState.CLOSED:
            self.failure_count = 0
