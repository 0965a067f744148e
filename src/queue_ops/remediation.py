"""Queue remediation operations.

Reprocessing and draining of failed jobs, job inspection and paginated
listings, single-job retry and cancel, and age-based retention purges.
Every call goes through the queue circuit breaker; every mutation
invalidates the cached stats.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import timedelta

from .backends.interfaces import QueueBackend
from .circuit_breaker import BackendCircuitBreaker
from .errors import InvalidJobStateError, JobNotFoundError
from .models import (
    CANCELLED_BY_USER,
    JobFilter,
    JobPage,
    JobRecord,
    JobState,
    PurgeResult,
    RemediationResult,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

RETRYABLE_STATES = frozenset({JobState.FAILED})
CANCELLABLE_STATES = frozenset({JobState.PENDING, JobState.ACTIVE, JobState.RETRY})
DEFAULT_PURGE_STATES = (JobState.COMPLETED, JobState.FAILED)


class QueueRemediationOps:
    """Operator actions on queues and individual jobs.

    Usage:
        ops = QueueRemediationOps(queue_backend, breaker, on_change=stats.invalidate)
        result = await ops.reprocess("process-image")
        page = await ops.list_jobs(state=JobState.FAILED, page=2)

    Each mutating call returns once the backend has acknowledged it; the
    actual processing of re-enqueued jobs happens asynchronously in the
    worker pool.
    """

    def __init__(
        self,
        queue_backend: QueueBackend,
        breaker: BackendCircuitBreaker,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._backend = queue_backend
        self._breaker = breaker
        self._on_change = on_change

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    async def reprocess(self, queue_name: str) -> RemediationResult:
        """Move every failed job of a queue back to pending.

        Payloads are preserved. A queue without failed jobs is a successful
        no-op.

        Args:
            queue_name: Queue to reprocess.

        Returns:
            RemediationResult with the number of re-enqueued jobs.
        """
        count = await self._breaker.execute(lambda: self._backend.requeue_failed(queue_name))
        self._changed()
        logger.info("Reprocessed %d failed jobs on %s", count, queue_name)
        return RemediationResult(
            queue_name=queue_name,
            action="reprocess",
            affected=count,
            message=f"Re-enqueued {count} failed jobs" if count else "No failed jobs to reprocess",
        )

    async def empty(
        self,
        queue_name: str,
        keep_completed: bool = True,
        include_pending: bool = False,
        include_active: bool = False,
    ) -> RemediationResult:
        """Remove failed (and optionally other) jobs from a queue.

        Args:
            queue_name: Queue to drain.
            keep_completed: Preserve completed jobs. Default True.
            include_pending: Also remove pending and retry jobs.
            include_active: Also remove active jobs.

        Returns:
            RemediationResult with the number of removed jobs.
        """
        states: list[JobState] = [JobState.FAILED]
        if include_pending:
            states.extend([JobState.PENDING, JobState.RETRY])
        if include_active:
            states.append(JobState.ACTIVE)
        if not keep_completed:
            states.append(JobState.COMPLETED)

        count = await self._breaker.execute(lambda: self._backend.remove_jobs(queue_name, states))
        self._changed()
        logger.info(
            "Emptied %s: removed %d jobs in states %s",
            queue_name,
            count,
            ",".join(s.value for s in states),
        )
        return RemediationResult(
            queue_name=queue_name,
            action="empty",
            affected=count,
            message=f"Removed {count} jobs",
        )

    async def get_job_detail(self, job_id: str) -> JobRecord:
        """Fetch one job.

        Raises:
            JobNotFoundError: If the id is unknown.
        """
        job = await self._breaker.execute(lambda: self._backend.get_job(job_id))
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def list_jobs(
        self,
        queue_name: str | None = None,
        state: JobState | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        job_type: str | None = None,
    ) -> JobPage:
        """List jobs newest first, offset-paginated.

        Args:
            queue_name: Only jobs of this queue.
            state: Only jobs in this state.
            page: 1-based page number; values below 1 are treated as 1.
            limit: Page size, clamped to 1..50.
            job_type: Only jobs of this type.

        Returns:
            JobPage with the jobs and pagination totals.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        job_filter = JobFilter(queue_name=queue_name, state=state, job_type=job_type)
        jobs, total = await self._breaker.execute(
            lambda: self._backend.list_jobs(job_filter, (page - 1) * limit, limit)
        )
        return JobPage(jobs=jobs, total=total, page=page, limit=limit)

    async def retry_job(self, job_id: str) -> JobRecord:
        """Reset one failed job to pending.

        Raises:
            JobNotFoundError: If the id is unknown.
            InvalidJobStateError: If the job is not failed.
        """
        job = await self.get_job_detail(job_id)
        if job.state not in RETRYABLE_STATES:
            raise InvalidJobStateError(job_id, job.state.value, "retry")
        updated = await self._breaker.execute(lambda: self._backend.retry_job(job_id))
        if updated is None:
            # State changed between the read and the write
            current = await self.get_job_detail(job_id)
            raise InvalidJobStateError(job_id, current.state.value, "retry")
        self._changed()
        logger.info("Job %s on %s queued for retry", job_id, job.queue_name)
        return updated

    async def cancel_job(self, job_id: str) -> JobRecord:
        """Cancel one unfinished job; it is marked failed.

        Raises:
            JobNotFoundError: If the id is unknown.
            InvalidJobStateError: If the job already completed or failed.
        """
        job = await self.get_job_detail(job_id)
        if job.state not in CANCELLABLE_STATES:
            raise InvalidJobStateError(job_id, job.state.value, "cancel")
        updated = await self._breaker.execute(
            lambda: self._backend.cancel_job(job_id, CANCELLED_BY_USER)
        )
        if updated is None:
            current = await self.get_job_detail(job_id)
            raise InvalidJobStateError(job_id, current.state.value, "cancel")
        self._changed()
        logger.info("Job %s on %s cancelled", job_id, job.queue_name)
        return updated

    async def purge_old_jobs(
        self,
        older_than_days: int = 30,
        states: Sequence[JobState | str] = DEFAULT_PURGE_STATES,
        dry_run: bool = False,
    ) -> PurgeResult:
        """Delete jobs older than a retention window.

        Args:
            older_than_days: Jobs created before now minus this many days
                are eligible. Must be at least 1.
            states: Eligible states. Defaults to completed and failed.
            dry_run: Count only.

        Returns:
            PurgeResult with the (would-be) deleted count and queues.

        Raises:
            ValueError: On a non-positive window or an empty/unknown state.
        """
        if older_than_days < 1:
            raise ValueError("older_than_days must be at least 1")
        job_states = [JobState(s) for s in states]
        if not job_states:
            raise ValueError("At least one state is required")

        cutoff = utcnow() - timedelta(days=older_than_days)
        count, queues = await self._breaker.execute(
            lambda: self._backend.purge_jobs(cutoff, job_states, dry_run)
        )
        if not dry_run:
            self._changed()
        logger.info(
            "%s %d jobs older than %d days in %s",
            "Would purge" if dry_run else "Purged",
            count,
            older_than_days,
            ", ".join(queues) or "no queues",
        )
        return PurgeResult(deleted_count=count, dry_run=dry_run, affected_queues=queues)
