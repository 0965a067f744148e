"""Shared fixtures for unit tests.

Backends are AsyncMock objects configured with healthy defaults; tests
override individual return values or side effects.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from queue_ops.circuit_breaker import BackendCircuitBreaker
from queue_ops.circuit_breaker_config import CircuitBreakerConfig
from queue_ops.models import JobRecord, JobState, QueueCounts, QueueSnapshot, WorkerStatus

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_job(job_id: str = "job-1", state: JobState = JobState.FAILED, **kwargs) -> JobRecord:
    """Build a JobRecord with sensible defaults."""
    fields = {
        "id": job_id,
        "queue_name": "process-image",
        "state": state,
        "priority": 0,
        "created_on": T0,
    }
    fields.update(kwargs)
    return JobRecord(**fields)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock: FakeClock) -> BackendCircuitBreaker:
    """Breaker that opens after two failures and recovers after 30s."""
    return BackendCircuitBreaker(
        "queue",
        CircuitBreakerConfig(failure_threshold=2, reset_timeout_seconds=30.0),
        clock=clock,
    )


@pytest.fixture
def queue_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.ping.return_value = None
    backend.list_queue_names.return_value = ["process-image"]
    backend.get_stats.return_value = [
        QueueSnapshot(
            name="process-image",
            display_name="Image Processing",
            description="Thumbnails and variants",
            counts=QueueCounts(pending=2, active=1, completed=10, failed=3),
        )
    ]
    backend.list_jobs.return_value = ([make_job()], 1)
    return backend


@pytest.fixture
def worker_backend() -> AsyncMock:
    backend = AsyncMock()
    backend.supports_restart = True
    backend.send_command.return_value = None
    backend.get_heartbeat.return_value = WorkerStatus(
        is_running=False, last_heartbeat=None, total_workers=0, active_workers=0
    )
    return backend


@pytest.fixture
def config_store() -> AsyncMock:
    store = AsyncMock()
    store.ping.return_value = None
    store.get_all.return_value = {}
    store.get.return_value = None
    return store


@pytest.fixture
def job_factory():
    """Factory fixture for JobRecord instances."""
    return make_job
