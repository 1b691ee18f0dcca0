"""
Circuit breaker guarding calls to the Front API.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation, calls allowed
    OPEN = "open"            # Failing fast, calls not allowed
    HALF_OPEN = "half_open"  # One probe call allowed after the cool-down


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker.

    Callers bracket each API call with ``before_call()`` and then exactly one of
    ``record_success()`` or ``record_failure()``. All state lives on the
    instance and every transition happens under its lock, so one breaker can be
    shared by concurrent calls of the same client.
    """

    def __init__(
        self,
        name: str = "front-api",
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Circuit breaker name for logging
            failure_threshold: Consecutive failures before opening the circuit
            reset_timeout: Seconds to stay open before admitting a probe call
            clock: Monotonic time source (injectable for tests)
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False

        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    @property
    def opened_at(self) -> Optional[float]:
        with self._lock:
            return self._opened_at

    def before_call(self) -> None:
        """
        Admit or reject a call.

        Raises:
            CircuitOpenError: While open, or half-open with the probe already taken
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._clock() - self._opened_at < self.reset_timeout:
                    raise CircuitOpenError()
                logger.info(f"Circuit {self.name} half-opening after {self.reset_timeout:g}s cool-down")
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False

            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitOpenError("circuit breaker is half-open: probe call already in flight")
                self._probe_in_flight = True

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                logger.info(f"Circuit {self.name} closing after successful probe")
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None
            self._probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit {self.name} reopening after failed probe")
                self._trip()
            elif (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                logger.warning(
                    f"Circuit {self.name} opening after {self._consecutive_failures} consecutive failures"
                )
                self._trip()

    def reset(self) -> None:
        """Force the breaker closed"""
        self.record_success()

    def _trip(self) -> None:
        # Caller holds the lock
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._probe_in_flight = False
