"""Domain models for the queue control plane.

This module defines the data structures shared by the stats aggregator,
worker lifecycle controller, remediation operations and housekeeping engine.

Job payloads (``data``/``output``) are deliberately opaque dictionaries: their
shape belongs to the producers and consumers of each job type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# Error written on jobs cancelled from the control plane
CANCELLED_BY_USER = "JOB_CANCELLED_BY_USER"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class JobState(Enum):
    """States a job can be in, as reported by the queue backend."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY = "retry"


class HealthState(Enum):
    """Overall health of the control plane dependencies."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CheckStatus(Enum):
    """Outcome of a single health check."""

    OK = "ok"
    WARN = "warn"
    ERROR = "error"


class FindingType(Enum):
    """Housekeeping detection categories.

    Declaration order is the order in which a run processes the types.
    """

    PENDING_DELETION_FILES = "pending_deletion_files"
    DELETED_STATUS_FILES = "deleted_status_files"
    FAILED_PROCESSING_FILES = "failed_processing_files"
    ABANDONED_UPLOADS = "abandoned_uploads"
    PHYSICAL_ORPHANS = "physical_orphans"


@dataclass(frozen=True)
class QueueCounts:
    """Per-state job counts for one queue."""

    pending: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.active + self.completed + self.failed

    def to_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
            "total": self.total,
        }


@dataclass(frozen=True)
class QueueSnapshot:
    """Point-in-time statistics for one queue."""

    name: str
    display_name: str
    description: str
    counts: QueueCounts

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "description": self.description,
            "counts": self.counts.to_dict(),
        }


@dataclass(frozen=True)
class JobRecord:
    """A job as observed on the queue backend.

    Attributes:
        id: Opaque job identifier.
        queue_name: Queue the job belongs to.
        state: Current job state.
        priority: Higher values are dequeued sooner.
        created_on: When the producer enqueued the job.
        started_on: When a worker picked the job up, if it has.
        completed_on: When the job reached a terminal state, if it has.
        duration_ms: Processing time, when known.
        data: Input payload.
        output: Result payload.
        job_type: Producer-defined job type.
        attempts: Attempts made so far.
        max_attempts: Attempts allowed before the job is marked failed.
        error: Last error message, if any.
    """

    id: str
    queue_name: str
    state: JobState
    priority: int
    created_on: datetime
    started_on: datetime | None = None
    completed_on: datetime | None = None
    duration_ms: int | None = None
    data: dict[str, Any] = field(default_factory=dict)
    output: dict[str, Any] | None = None
    job_type: str | None = None
    attempts: int = 0
    max_attempts: int = 3
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "queue_name": self.queue_name,
            "state": self.state.value,
            "priority": self.priority,
            "created_on": self.created_on.isoformat(),
            "started_on": self.started_on.isoformat() if self.started_on else None,
            "completed_on": self.completed_on.isoformat() if self.completed_on else None,
            "duration_ms": self.duration_ms,
            "data": self.data,
            "output": self.output,
            "job_type": self.job_type,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "error": self.error,
        }


@dataclass(frozen=True)
class JobFilter:
    """Filter for job listings."""

    queue_name: str | None = None
    state: JobState | None = None
    job_type: str | None = None


@dataclass(frozen=True)
class JobPage:
    """One page of an offset-paginated job listing."""

    jobs: list[JobRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return -(-self.total // self.limit)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobs": [job.to_dict() for job in self.jobs],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


@dataclass(frozen=True)
class WorkerStatus:
    """Worker pool status derived from heartbeats."""

    is_running: bool
    last_heartbeat: datetime | None
    total_workers: int
    active_workers: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
            "total_workers": self.total_workers,
            "active_workers": self.active_workers,
        }


@dataclass(frozen=True)
class WorkerConfiguration:
    """Per worker-type configuration.

    Attributes:
        enabled: Whether jobs of this type are dispatched.
        max_retries: Retries before a job is marked failed (>= 0).
        concurrency: Parallel jobs of this type (>= 1).
        updated_at: Timestamp of the write that produced this value.
    """

    enabled: bool = True
    max_retries: int = 3
    concurrency: int = 1
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "max_retries": self.max_retries,
            "concurrency": self.concurrency,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class HealthCheck:
    """Result of one dependency health check."""

    name: str
    status: CheckStatus
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status.value, "details": self.details}


@dataclass(frozen=True)
class HealthReport:
    """Aggregated health across all checks."""

    status: HealthState
    checks: list[HealthCheck]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": [check.to_dict() for check in self.checks],
        }


@dataclass(frozen=True)
class StatsSnapshot:
    """Everything a dashboard poll returns."""

    queues: list[QueueSnapshot]
    recent_jobs: list[JobRecord]
    worker_status: WorkerStatus
    health: HealthReport
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "queues": [queue.to_dict() for queue in self.queues],
            "recent_jobs": [job.to_dict() for job in self.recent_jobs],
            "worker_status": self.worker_status.to_dict(),
            "health": self.health.to_dict(),
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class RemediationResult:
    """Acknowledgement of a remediation request."""

    queue_name: str
    action: str
    affected: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_name": self.queue_name,
            "action": self.action,
            "affected": self.affected,
            "message": self.message,
        }


@dataclass(frozen=True)
class PurgeResult:
    """Outcome of an age-based job retention purge."""

    deleted_count: int
    dry_run: bool
    affected_queues: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "deleted_count": self.deleted_count,
            "dry_run": self.dry_run,
            "affected_queues": self.affected_queues,
        }


@dataclass(frozen=True)
class FileRef:
    """A housekeeping candidate as reported by the storage backend.

    Attributes:
        path: Path relative to the storage root.
        file_name: Base name of the file.
        record_id: Catalog record id, None for files without a record.
        status: Catalog status (active, uploading, pending_deletion, deleted).
        processing_status: Processing pipeline status, if tracked.
        created_at: Record creation time (file mtime for orphans).
        flagged_at: When the record was flagged for deletion.
        size_bytes: Size known to the catalog, if any.
    """

    path: str
    file_name: str
    record_id: int | None = None
    status: str | None = None
    processing_status: str | None = None
    created_at: datetime | None = None
    flagged_at: datetime | None = None
    size_bytes: int | None = None

    @property
    def reference_time(self) -> datetime | None:
        """Timestamp used for oldest-first ordering."""
        return self.flagged_at or self.created_at


@dataclass(frozen=True)
class HousekeepingFinding:
    """A file that a detection pass selected for cleanup."""

    type: FindingType
    file_name: str
    file_path: str
    reason: str
    size_bytes: int
    record_id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "file_name": self.file_name,
            "file_path": self.file_path,
            "reason": self.reason,
            "size_bytes": self.size_bytes,
        }


@dataclass(frozen=True)
class HousekeepingTypeResult:
    """Per detection type outcome of a housekeeping pass."""

    type: FindingType
    processed_count: int
    cleaned_count: int
    total_size_freed: int
    details: list[HousekeepingFinding]
    errors: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "processed_count": self.processed_count,
            "cleaned_count": self.cleaned_count,
            "total_size_freed": self.total_size_freed,
            "details": [finding.to_dict() for finding in self.details],
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class HousekeepingRunResult:
    """Immutable result of one analyze or run invocation."""

    dry_run: bool
    total_processed: int
    total_cleaned: int
    total_size_freed: int
    results: list[HousekeepingTypeResult]
    errors: list[str]
    duration_ms: int

    @property
    def partial_failure(self) -> bool:
        """True when some individual deletions failed."""
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "total_processed": self.total_processed,
            "total_cleaned": self.total_cleaned,
            "total_size_freed": self.total_size_freed,
            "results": [result.to_dict() for result in self.results],
            "errors": list(self.errors),
            "partial_failure": self.partial_failure,
            "duration_ms": self.duration_ms,
        }
