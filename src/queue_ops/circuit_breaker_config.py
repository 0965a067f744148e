"""Circuit breaker configuration for the queue control plane.

Each guarded backend (queue, worker, config, storage) gets its own breaker
built from the same configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CircuitState(Enum):
    """Possible states for a circuit breaker."""

    CLOSED = "closed"  # Normal operation - calls allowed
    OPEN = "open"  # Circuit tripped - calls fail fast
    HALF_OPEN = "half_open"  # Testing recovery - one trial call


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Settings shared by all backend circuit breakers.

    Attributes:
        failure_threshold: Consecutive failures before opening the circuit.
        reset_timeout_seconds: Time an open circuit waits before a trial call.
    """

    failure_threshold: int = 3
    reset_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.reset_timeout_seconds < 0:
            raise ValueError("reset_timeout_seconds must not be negative")


# Default configuration instance for convenience
DEFAULT_CONFIG = CircuitBreakerConfig()
