"""Backend circuit breaker implementation.

Wraps calls to a backend (queue, worker, config or storage) and stops
calling it for a cooldown period after repeated consecutive failures.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from ..circuit_breaker_config import DEFAULT_CONFIG, CircuitBreakerConfig, CircuitState
from ..models import utcnow
from .exceptions import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitStateChange:
    """Payload delivered to state change listeners."""

    name: str
    old_state: CircuitState
    new_state: CircuitState
    failure_count: int
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "old_state": self.old_state.value,
            "new_state": self.new_state.value,
            "failure_count": self.failure_count,
            "timestamp": self.timestamp.isoformat(),
        }


StateChangeListener = Callable[[CircuitStateChange], None]


class BackendCircuitBreaker:
    """Circuit breaker guarding one backend.

    Usage:
        breaker = BackendCircuitBreaker("queue", config)
        stats = await breaker.execute(lambda: backend.get_stats(names))

    While the circuit is OPEN and the reset timeout has not elapsed,
    ``execute`` raises ``CircuitOpenError`` without invoking the operation.
    Errors raised by the operation itself propagate unchanged.

    Attributes:
        name: Identifier of the guarded backend.
        config: Threshold and reset timeout.
        state: Current circuit state.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the circuit breaker.

        Args:
            name: Identifier of the guarded backend.
            config: Configuration settings. Uses DEFAULT_CONFIG if None.
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self._name = name
        self._config = config or DEFAULT_CONFIG
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: float | None = None
        self._last_failure_at: datetime | None = None
        self._last_error: str | None = None
        self._trial_in_flight = False

        self._listeners: list[StateChangeListener] = []

        # Guards state reads/writes; never held while the operation runs
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        """Return the breaker name."""
        return self._name

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def state(self) -> CircuitState:
        """Return the current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Return the consecutive failure count."""
        return self._failure_count

    @property
    def last_failure_at(self) -> datetime | None:
        return self._last_failure_at

    @property
    def is_open(self) -> bool:
        """Check if circuit is currently open (failing fast)."""
        return self._state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        """Check if circuit is currently closed (normal operation)."""
        return self._state == CircuitState.CLOSED

    def on_state_change(self, listener: StateChangeListener) -> None:
        """Register a listener called on every state transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def get_time_until_retry(self) -> float:
        """Get seconds until an open circuit allows a trial call."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        elapsed = self._clock() - self._opened_at
        return max(0.0, self._config.reset_timeout_seconds - elapsed)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the circuit.

        Args:
            operation: Zero-argument coroutine function calling the backend.

        Returns:
            Whatever the operation returns.

        Raises:
            CircuitOpenError: If the circuit is open, or a half-open trial
                call is already in flight.
        """
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if not self._should_attempt_recovery():
                    raise CircuitOpenError(self._name, self.get_time_until_retry())
                self._transition(CircuitState.HALF_OPEN)

            is_trial = self._state == CircuitState.HALF_OPEN
            if is_trial:
                if self._trial_in_flight:
                    raise CircuitOpenError(self._name, 0.0)
                self._trial_in_flight = True

        try:
            result = await operation()
        except Exception as exc:
            await self._record_failure(exc)
            raise
        finally:
            if is_trial:
                self._trial_in_flight = False

        await self._record_success()
        return result

    async def reset(self) -> None:
        """Manually reset the circuit to CLOSED.

        This is typically used for administrative intervention.
        """
        async with self._lock:
            self._failure_count = 0
            self._opened_at = None
            self._trial_in_flight = False
            if self._state != CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)
                logger.info("Circuit %s manually reset to CLOSED", self._name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self._name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "failure_threshold": self._config.failure_threshold,
            "reset_timeout_seconds": self._config.reset_timeout_seconds,
            "last_failure_at": self._last_failure_at.isoformat() if self._last_failure_at else None,
            "last_error": self._last_error,
            "time_until_retry": round(self.get_time_until_retry(), 3),
        }

    def _should_attempt_recovery(self) -> bool:
        """Check if enough time has passed to attempt recovery."""
        if self._opened_at is None:
            return True
        return self._clock() - self._opened_at >= self._config.reset_timeout_seconds

    async def _record_failure(self, exc: Exception) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_at = utcnow()
            self._last_error = str(exc) or type(exc).__name__

            logger.warning(
                "Circuit %s failure %d/%d: %s",
                self._name,
                self._failure_count,
                self._config.failure_threshold,
                self._last_error,
            )

            if self._state == CircuitState.HALF_OPEN:
                # Failure in half-open means back to open with a fresh timer
                self._open()
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self._config.failure_threshold
            ):
                self._open()

    async def _record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._opened_at = None
                self._transition(CircuitState.CLOSED)
                logger.info("Circuit %s CLOSED after successful recovery", self._name)

    def _open(self) -> None:
        self._opened_at = self._clock()
        self._transition(CircuitState.OPEN)
        logger.warning(
            "Circuit %s OPENED (failures=%d), failing fast for %.1fs",
            self._name,
            self._failure_count,
            self._config.reset_timeout_seconds,
        )

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        change = CircuitStateChange(
            name=self._name,
            old_state=old_state,
            new_state=new_state,
            failure_count=self._failure_count,
            timestamp=utcnow(),
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.warning(
                    "Circuit %s state listener failed: %s", self._name, e, exc_info=True
                )
