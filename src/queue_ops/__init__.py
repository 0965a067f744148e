"""Queue Ops.

Monitoring and control plane for background job queues: queue stats,
worker lifecycle and configuration, failed-job remediation and storage
housekeeping, each backend guarded by a circuit breaker.
"""

from __future__ import annotations

from .circuit_breaker import BackendCircuitBreaker, CircuitBreakerRegistry, CircuitOpenError
from .circuit_breaker_config import CircuitBreakerConfig
from .config import Settings, load_settings
from .control_plane import ControlPlane
from .errors import (
    BackendUnavailableError,
    InvalidJobStateError,
    InvalidTransitionError,
    JobNotFoundError,
    QueueOpsError,
    WorkerCommandError,
    WorkerNotFoundError,
)
from .housekeeping import HousekeepingConfig, HousekeepingEngine
from .remediation import QueueRemediationOps
from .stats import QueueStatsAggregator
from .workers import WorkerConfigRegistry, WorkerLifecycleController, WorkerState

__all__ = [
    # Control plane
    "ControlPlane",
    "Settings",
    "load_settings",
    # Components
    "HousekeepingConfig",
    "HousekeepingEngine",
    "QueueRemediationOps",
    "QueueStatsAggregator",
    "WorkerConfigRegistry",
    "WorkerLifecycleController",
    "WorkerState",
    # Circuit breakers
    "BackendCircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    # Errors
    "BackendUnavailableError",
    "InvalidJobStateError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "QueueOpsError",
    "WorkerCommandError",
    "WorkerNotFoundError",
]
