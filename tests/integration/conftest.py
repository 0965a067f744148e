"""Shared fixtures for control plane integration tests."""

from __future__ import annotations

from dataclasses import replace

import pytest

from queue_ops.config import Settings, StatsSettings, WorkerSettings
from queue_ops.control_plane import ControlPlane
from queue_ops.database import QueueOpsDB
from queue_ops.models import JobState


@pytest.fixture
async def db():
    """In-memory database with schema initialized."""
    async with QueueOpsDB(":memory:") as database:
        yield database


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings over an in-memory database and a temporary storage root."""
    storage_root = tmp_path / "storage"
    storage_root.mkdir()
    return replace(
        Settings(),
        db_path=":memory:",
        storage_root=str(storage_root),
        stats=StatsSettings(memory_warn_percent=100.0, disk_warn_percent=100.0),
        workers=WorkerSettings(confirm_timeout_seconds=0.2, confirm_poll_interval_seconds=0.05),
    )


@pytest.fixture
async def plane(settings):
    """Started control plane over the bundled SQLite and filesystem backends."""
    async with ControlPlane.from_settings(settings) as control_plane:
        yield control_plane


@pytest.fixture
async def seeded_plane(plane):
    """Control plane with jobs in every state on two queues."""
    db = plane.db
    await db.enqueue_job(
        "process-image", {"file": "a.jpg"}, job_id="img-failed", state=JobState.FAILED
    )
    await db.enqueue_job("process-image", {"file": "b.jpg"}, job_id="img-pending")
    await db.enqueue_job("process-image", job_id="img-done", state=JobState.COMPLETED)
    await db.enqueue_job(
        "send-email", {"to": "x@example.com"}, job_id="mail-active", state=JobState.ACTIVE
    )
    return plane
