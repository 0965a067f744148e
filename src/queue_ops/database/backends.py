"""SQLite implementations of the queue, worker and config backends.

Thin adapters that expose ``QueueOpsDB`` through the backend protocols.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from ..models import (
    JobFilter,
    JobRecord,
    JobState,
    QueueSnapshot,
    WorkerConfiguration,
    WorkerStatus,
)
from .core import QueueOpsDB


class SqliteQueueBackend:
    """QueueBackend backed by the ``jobs`` and ``queues`` tables."""

    def __init__(self, db: QueueOpsDB) -> None:
        self._db = db

    async def ping(self) -> None:
        await self._db.ping_database()

    async def list_queue_names(self) -> list[str]:
        return await self._db.list_queue_names()

    async def get_stats(self, queue_names: Sequence[str]) -> list[QueueSnapshot]:
        return await self._db.get_queue_stats(queue_names)

    async def list_jobs(
        self, job_filter: JobFilter, offset: int, limit: int
    ) -> tuple[list[JobRecord], int]:
        return await self._db.list_jobs(job_filter, offset, limit)

    async def get_job(self, job_id: str) -> JobRecord | None:
        return await self._db.get_job(job_id)

    async def requeue_failed(self, queue_name: str) -> int:
        return await self._db.requeue_failed(queue_name)

    async def remove_jobs(self, queue_name: str, states: Sequence[JobState]) -> int:
        return await self._db.remove_jobs(queue_name, states)

    async def retry_job(self, job_id: str) -> JobRecord | None:
        return await self._db.retry_job(job_id)

    async def cancel_job(self, job_id: str, reason: str) -> JobRecord | None:
        return await self._db.cancel_job(job_id, reason)

    async def purge_jobs(
        self, older_than: datetime, states: Sequence[JobState], dry_run: bool
    ) -> tuple[int, list[str]]:
        return await self._db.purge_jobs(older_than, states, dry_run)


class SqliteWorkerBackend:
    """WorkerBackend that writes commands to ``worker_commands``.

    Workers poll the command log and report through ``workers`` heartbeats.
    Restart is a single command, so ``supports_restart`` is True.
    """

    def __init__(self, db: QueueOpsDB, stale_after_seconds: float = 60.0) -> None:
        self._db = db
        self._stale_after_seconds = stale_after_seconds

    @property
    def supports_restart(self) -> bool:
        return True

    async def send_command(self, action: str) -> None:
        await self._db.issue_command(action)

    async def get_heartbeat(self) -> WorkerStatus:
        return await self._db.get_worker_status(self._stale_after_seconds)


class SqliteConfigStore:
    """ConfigStore backed by the ``worker_configs`` table."""

    def __init__(self, db: QueueOpsDB) -> None:
        self._db = db

    async def ping(self) -> None:
        await self._db.ping_database()

    async def get(self, worker_id: str) -> WorkerConfiguration | None:
        return await self._db.get_worker_config(worker_id)

    async def set(self, worker_id: str, config: WorkerConfiguration) -> None:
        await self._db.save_worker_config(worker_id, config)

    async def get_all(self) -> dict[str, WorkerConfiguration]:
        return await self._db.get_all_worker_configs()
