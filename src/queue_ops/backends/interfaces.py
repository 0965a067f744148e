"""Interfaces of the external systems the control plane drives.

The core never talks to a queue, worker pool, config store or file store
directly; it goes through these protocols. ``queue_ops.database`` and
``queue_ops.backends.storage`` provide the bundled implementations, and
tests substitute ``AsyncMock`` fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from ..models import (
    FileRef,
    FindingType,
    JobFilter,
    JobRecord,
    JobState,
    QueueSnapshot,
    WorkerConfiguration,
    WorkerStatus,
)


@runtime_checkable
class QueueBackend(Protocol):
    """Job queue: statistics, listings and remediation primitives."""

    async def ping(self) -> None: ...

    async def list_queue_names(self) -> list[str]: ...

    async def get_stats(self, queue_names: Sequence[str]) -> list[QueueSnapshot]: ...

    async def list_jobs(
        self, job_filter: JobFilter, offset: int, limit: int
    ) -> tuple[list[JobRecord], int]: ...

    async def get_job(self, job_id: str) -> JobRecord | None: ...

    async def requeue_failed(self, queue_name: str) -> int: ...

    async def remove_jobs(self, queue_name: str, states: Sequence[JobState]) -> int: ...

    async def retry_job(self, job_id: str) -> JobRecord | None: ...

    async def cancel_job(self, job_id: str, reason: str) -> JobRecord | None: ...

    async def purge_jobs(
        self, older_than: datetime, states: Sequence[JobState], dry_run: bool
    ) -> tuple[int, list[str]]: ...


@runtime_checkable
class WorkerBackend(Protocol):
    """Worker pool: lifecycle commands and heartbeat observation."""

    @property
    def supports_restart(self) -> bool: ...

    async def send_command(self, action: str) -> None: ...

    async def get_heartbeat(self) -> WorkerStatus: ...


@runtime_checkable
class ConfigStore(Protocol):
    """Persistent per worker-type configuration."""

    async def ping(self) -> None: ...

    async def get(self, worker_id: str) -> WorkerConfiguration | None: ...

    async def set(self, worker_id: str, config: WorkerConfiguration) -> None: ...

    async def get_all(self) -> dict[str, WorkerConfiguration]: ...


@runtime_checkable
class StorageBackend(Protocol):
    """Media file store plus the catalog that references its files."""

    async def list_candidates(self, finding_type: FindingType, max_files: int) -> list[FileRef]: ...

    async def exists(self, path: str) -> bool: ...

    async def file_size(self, path: str) -> int | None: ...

    async def delete(self, path: str) -> bool: ...

    async def remove_empty_parents(self, path: str) -> int: ...

    async def mark_deleted(self, record_id: int) -> None: ...

    async def purge_record(self, record_id: int) -> None: ...
