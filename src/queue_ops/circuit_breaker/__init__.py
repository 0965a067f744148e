"""Circuit breaker implementation for the queue control plane.

Guards calls to external backends so a failing dependency is not
hammered by dashboard polling or repeated commands.

The circuit breaker has three states:
- CLOSED: Normal operation, consecutive failures are counted
- OPEN: Circuit tripped, calls fail fast with CircuitOpenError
- HALF_OPEN: Testing recovery, a single trial call is allowed
"""

from .breaker import BackendCircuitBreaker, CircuitStateChange, StateChangeListener
from .exceptions import CircuitBreakerError, CircuitOpenError
from .registry import CircuitBreakerRegistry

__all__ = [
    "BackendCircuitBreaker",
    "CircuitBreakerError",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitStateChange",
    "StateChangeListener",
]
