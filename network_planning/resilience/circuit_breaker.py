"""Circuit breaker for unstable dependencies.

A breaker counts consecutive failures of the operations it guards.  Once the
failure threshold is reached it opens and rejects calls with
``CircuitOpenError`` until the recovery time has elapsed.  The first call
after that runs as a single half-open trial: success closes the breaker,
failure reopens it for another recovery period.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union
import asyncio
import inspect
import logging
import threading
import time

from ..errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Breaker state."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Failure-counting circuit breaker.

    Args:
        name: Breaker name used in logs and errors
        failure_threshold: Consecutive failures that open the breaker
        recovery_time_seconds: Time the breaker stays open before a trial call
        clock: Monotonic time source (injectable for tests)

    Example:
        breaker = CircuitBreaker("database", failure_threshold=3, recovery_time_seconds=30)
        rows = await breaker.execute(lambda: repository.fetch(scenario_id))
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_time_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be at least 1, got {failure_threshold}")
        if recovery_time_seconds < 0:
            raise ValueError(f"recovery_time_seconds must be non-negative, got {recovery_time_seconds}")

        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_time_seconds = recovery_time_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._last_failure_time: Optional[float] = None
        self._next_attempt: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    def get_state(self) -> Dict[str, Any]:
        """Snapshot of the breaker for diagnostics."""
        with self._lock:
            return {
                'name': self.name,
                'state': self._state.value,
                'failures': self._failures,
                'failure_threshold': self.failure_threshold,
                'last_failure_time': self._last_failure_time,
                'next_attempt': self._next_attempt,
            }

    def reset(self) -> None:
        """Close the breaker and clear the failure count."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._last_failure_time = None
            self._next_attempt = None
            self._trial_in_flight = False
        logger.info(f"Circuit breaker '{self.name}' reset")

    def _before_call(self) -> None:
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return
            now = self._clock()
            if self._state == CircuitState.OPEN:
                if self._next_attempt is not None and now < self._next_attempt:
                    raise CircuitOpenError(self.name, self._next_attempt - now)
                self._state = CircuitState.HALF_OPEN
                logger.info(f"Circuit breaker '{self.name}' half-open; allowing trial call")
            # Half-open: only one trial at a time
            if self._trial_in_flight:
                raise CircuitOpenError(self.name, 0.0)
            self._trial_in_flight = True

    def _on_success(self) -> None:
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info(f"Circuit breaker '{self.name}' closed after successful trial")
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._next_attempt = None
            self._trial_in_flight = False

    def _on_failure(self, error: BaseException) -> None:
        with self._lock:
            now = self._clock()
            self._failures += 1
            self._last_failure_time = now
            was_half_open = self._state == CircuitState.HALF_OPEN
            self._trial_in_flight = False
            if was_half_open or self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._next_attempt = now + self.recovery_time_seconds
                logger.warning(
                    f"Circuit breaker '{self.name}' opened after {self._failures} failure(s): {error}"
                )

    def call(self, operation: Callable[[], Any]) -> Any:
        """Run a synchronous operation through the breaker.

        Raises:
            CircuitOpenError: If the breaker rejects the call
        """
        self._before_call()
        try:
            result = operation()
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    async def execute(self, operation: Callable[[], Union[Any, Awaitable[Any]]]) -> Any:
        """Run an operation through the breaker, awaiting it if it returns an awaitable.

        Raises:
            CircuitOpenError: If the breaker rejects the call
        """
        self._before_call()
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            with self._lock:
                self._trial_in_flight = False
            raise
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result


def create_database_breaker(clock: Callable[[], float] = time.monotonic) -> CircuitBreaker:
    """Breaker for persistence collaborators (3 failures, 30 s recovery)."""
    return CircuitBreaker("database", failure_threshold=3, recovery_time_seconds=30.0, clock=clock)

