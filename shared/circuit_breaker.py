"""
Circuit breaker pattern implementation for resilient service calls.

Each breaker is owned by the client instance that constructs it; there is no
process-wide registry. State is shared by every concurrent request going
through that client, so transitions happen under a lock.
"""

import asyncio
import threading
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, Union

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, requests blocked
    HALF_OPEN = "half_open"  # One trial call allowed


class CircuitBreakerOpenException(Exception):
    """Raised when a call is rejected without being attempted."""

    def __init__(self, name: str, retry_after: float = 0.0):
        super().__init__(f"Circuit breaker '{name}' is OPEN - blocking call")
        self.name = name
        self.retry_after = retry_after


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    CLOSED -> OPEN after ``failure_threshold`` consecutive counted failures.
    OPEN -> HALF_OPEN once ``recovery_timeout`` seconds have passed; exactly one
    trial call is admitted while half-open. The trial closes the circuit on
    success and re-opens it on failure.

    Only exceptions matching ``expected_exception`` are counted. Cancellation
    is never counted.
    """

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 30.0,
                 expected_exception: Union[Type[BaseException], Tuple[Type[BaseException], ...]] = Exception,
                 name: str = "default",
                 clock: Callable[[], float] = time.monotonic,
                 on_state_change: Optional[Callable[[str, CircuitBreakerState], None]] = None):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self.name = name
        self.logger = get_logger(f"circuit_breaker.{name}")

        self._clock = clock
        self._on_state_change = on_state_change
        self._lock = threading.Lock()
        self._state = CircuitBreakerState.CLOSED
        self._failure_count = 0
        self._opened_at = 0.0
        self._last_failure_time = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        with self._lock:
            return self._state

    def _transition(self, new_state: CircuitBreakerState):
        """Change state. Caller holds the lock."""
        if new_state is self._state:
            return
        self._state = new_state
        if self._on_state_change is not None:
            try:
                self._on_state_change(self.name, new_state)
            except Exception as exc:  # pragma: no cover - observers must not break calls
                self.logger.debug("State change observer failed", error=str(exc))

    def _acquire(self) -> bool:
        """Decide whether a call may go through. Returns True for the half-open trial."""
        with self._lock:
            if self._state == CircuitBreakerState.CLOSED:
                return False

            if self._state == CircuitBreakerState.OPEN:
                if (self._clock() - self._opened_at) < self.recovery_timeout:
                    raise CircuitBreakerOpenException(self.name, self._retry_after())
                self._transition(CircuitBreakerState.HALF_OPEN)
                self.logger.info("Circuit breaker transitioning to half-open")

            if self._trial_in_flight:
                raise CircuitBreakerOpenException(self.name, 0.0)
            self._trial_in_flight = True
            return True

    def _retry_after(self) -> float:
        return max(0.0, self.recovery_timeout - (self._clock() - self._opened_at))

    def _record_success(self, trial: bool):
        with self._lock:
            if trial:
                self._trial_in_flight = False
                self._transition(CircuitBreakerState.CLOSED)
                self.logger.info("Circuit breaker reset to CLOSED after successful call")
            self._failure_count = 0

    def _record_failure(self, trial: bool, error: BaseException):
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if trial:
                self._trial_in_flight = False
                self._opened_at = self._last_failure_time
                self._transition(CircuitBreakerState.OPEN)
                self.logger.warning("Circuit breaker re-opened after failed trial call", error=str(error))
            elif self._state == CircuitBreakerState.CLOSED and self._failure_count >= self.failure_threshold:
                self._opened_at = self._last_failure_time
                self._transition(CircuitBreakerState.OPEN)
                self.logger.warning(
                    "Circuit breaker opened due to failures",
                    failure_count=self._failure_count,
                    threshold=self.failure_threshold
                )

    def _release_trial(self, trial: bool):
        if trial:
            with self._lock:
                self._trial_in_flight = False

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Execute function with circuit breaker protection."""
        trial = self._acquire()

        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            self._release_trial(trial)
            raise
        except self.expected_exception as exc:
            self._record_failure(trial, exc)
            raise
        except BaseException:
            self._release_trial(trial)
            raise

        self._record_success(trial)
        return result

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "last_failure_time": self._last_failure_time,
                "failure_threshold": self.failure_threshold,
                "recovery_timeout": self.recovery_timeout
            }

    def is_open(self) -> bool:
        """Check if circuit breaker is in OPEN state."""
        return self.state == CircuitBreakerState.OPEN
