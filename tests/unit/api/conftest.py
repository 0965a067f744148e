"""Fixtures for API unit tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from queue_ops.circuit_breaker import CircuitBreakerRegistry
from queue_ops.circuit_breaker_config import CircuitBreakerConfig
from queue_ops.workers import WorkerLifecycleController


@pytest.fixture
def fake_plane(clock, worker_backend):
    """Stand-in control plane with real breakers and lifecycle controller."""
    plane = MagicMock()
    plane.breakers = CircuitBreakerRegistry(
        CircuitBreakerConfig(failure_threshold=1, reset_timeout_seconds=30.0), clock=clock
    )
    plane.lifecycle = WorkerLifecycleController(
        worker_backend, plane.breakers.get("worker"), clock=clock
    )
    return plane
