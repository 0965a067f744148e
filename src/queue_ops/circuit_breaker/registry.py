"""Circuit breaker registry for managing the per-backend breakers.

Provides factory access to one breaker per guarded backend, with
aggregate views for health checks and administrative reset.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from ..circuit_breaker_config import DEFAULT_CONFIG, CircuitBreakerConfig, CircuitState
from .breaker import BackendCircuitBreaker, StateChangeListener

logger = logging.getLogger(__name__)


class CircuitBreakerRegistry:
    """Central registry for all backend circuit breakers.

    Usage:
        registry = CircuitBreakerRegistry(config)
        queue_breaker = registry.get("queue")
        registry.on_state_change(publish_banner_event)

    Listeners registered on the registry are attached to every breaker,
    including breakers created after registration.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or DEFAULT_CONFIG
        self._clock = clock
        self._breakers: dict[str, BackendCircuitBreaker] = {}
        self._listeners: list[StateChangeListener] = []

    def get(self, name: str) -> BackendCircuitBreaker:
        """Get or create the breaker for a backend.

        Args:
            name: Backend identifier (e.g., "queue", "worker").

        Returns:
            The breaker for this backend.
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = BackendCircuitBreaker(name, self._config, clock=self._clock)
            for listener in self._listeners:
                breaker.on_state_change(listener)
            self._breakers[name] = breaker
        return breaker

    def find(self, name: str) -> BackendCircuitBreaker | None:
        """Return an existing breaker without creating one."""
        return self._breakers.get(name)

    def all(self) -> list[BackendCircuitBreaker]:
        return [self._breakers[name] for name in sorted(self._breakers)]

    def on_state_change(self, listener: StateChangeListener) -> None:
        """Attach a listener to every current and future breaker."""
        self._listeners.append(listener)
        for breaker in self._breakers.values():
            breaker.on_state_change(listener)

    def remove_listener(self, listener: StateChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
        for breaker in self._breakers.values():
            breaker.remove_listener(listener)

    def get_all_open(self) -> list[BackendCircuitBreaker]:
        """Get all breakers currently in OPEN or HALF_OPEN state."""
        return [breaker for breaker in self.all() if breaker.state != CircuitState.CLOSED]

    def get_stats(self) -> dict[str, Any]:
        """Get counts of breakers by state."""
        breakers = self.all()
        return {
            "total": len(breakers),
            "closed": sum(1 for b in breakers if b.state == CircuitState.CLOSED),
            "open": sum(1 for b in breakers if b.state == CircuitState.OPEN),
            "half_open": sum(1 for b in breakers if b.state == CircuitState.HALF_OPEN),
        }

    async def reset_all(self) -> int:
        """Reset every non-closed breaker to CLOSED.

        Returns:
            Number of breakers reset.
        """
        reset_count = 0
        for breaker in self.all():
            if breaker.state != CircuitState.CLOSED:
                await breaker.reset()
                reset_count += 1
        logger.info("Reset %d circuits via registry.reset_all()", reset_count)
        return reset_count
