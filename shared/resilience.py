"""
Resilient remote caller: bounded retries, a consecutive-failure circuit
breaker and a per-attempt timeout layered under service-to-service calls.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

import httpx

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitBreakerState
from shared.errors import ExternalServiceError, ServiceUnavailableError
from shared.logging import get_logger
from shared.metrics import ApplicationMetrics
from shared.retry import RetryConfig, RetryError, call_with_retry

DEFAULT_TRANSIENT_EXCEPTIONS: Tuple[Type[BaseException], ...] = (
    httpx.TransportError,
    asyncio.TimeoutError,
    ExternalServiceError,
)


@dataclass(frozen=True)
class ResiliencePolicy:
    """Fixed policy applied to every call made through a ``ResilientCaller``."""

    max_attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 2.0
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    attempt_timeout: float = 10.0

    @classmethod
    def from_config(cls, config) -> "ResiliencePolicy":
        return cls(
            max_attempts=config.remote_max_attempts,
            base_delay=config.remote_base_delay,
            failure_threshold=config.circuit_failure_threshold,
            recovery_timeout=config.circuit_recovery_timeout,
            attempt_timeout=config.remote_attempt_timeout,
        )


class ResilientCaller:
    """Wraps outbound calls to one peer service.

    Every attempt goes through the breaker, so "consecutive failures" are
    counted per attempt, not per logical call. When the circuit is open the
    call fails immediately with ``ServiceUnavailableError`` and the wrapped
    function is not invoked. Exceptions outside ``transient_exceptions``
    (caller-input errors, 4xx responses) propagate unchanged and are neither
    retried nor counted.
    """

    def __init__(self,
                 name: str,
                 policy: Optional[ResiliencePolicy] = None,
                 *,
                 transient_exceptions: Tuple[Type[BaseException], ...] = DEFAULT_TRANSIENT_EXCEPTIONS,
                 metrics: Optional[ApplicationMetrics] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.name = name
        self.policy = policy or ResiliencePolicy()
        self.transient_exceptions = transient_exceptions
        self.metrics = metrics
        self.logger = get_logger(f"resilience.{name}")
        self._sleep = sleep
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=self.policy.failure_threshold,
            recovery_timeout=self.policy.recovery_timeout,
            expected_exception=transient_exceptions,
            name=name,
            clock=clock,
            on_state_change=self._on_state_change,
        )
        if self.metrics:
            self.metrics.set_circuit_state(name, CircuitBreakerState.CLOSED.value)

    def _on_state_change(self, name: str, state: CircuitBreakerState):
        if self.metrics:
            self.metrics.set_circuit_state(name, state.value)

    def _retry_config(self, idempotent: bool) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.policy.max_attempts if idempotent else 1,
            base_delay=self.policy.base_delay,
            max_delay=self.policy.max_delay,
        )

    async def _attempt(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        async def _bounded():
            return await asyncio.wait_for(func(*args, **kwargs), self.policy.attempt_timeout)

        return await self.circuit_breaker.call(_bounded)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, idempotent: bool = True, **kwargs) -> Any:
        """Invoke ``func(*args, **kwargs)`` under the policy.

        Only idempotent reads are retried; other calls get a single attempt.
        """
        try:
            return await call_with_retry(
                self._attempt, func, *args,
                exceptions=self.transient_exceptions,
                config=self._retry_config(idempotent),
                operation=self.name,
                sleep=self._sleep,
                **kwargs
            )
        except CircuitBreakerOpenException as exc:
            self.logger.warning("Call rejected by open circuit", retry_after=round(exc.retry_after, 3))
            raise ServiceUnavailableError(
                self.name,
                "circuit open",
                details={"retry_after": exc.retry_after}
            ) from exc
        except RetryError as exc:
            raise ServiceUnavailableError(
                self.name,
                "retries exhausted",
                details={"attempts": exc.attempts, "last_error": str(exc.last_exception)}
            ) from exc
