"""Queue and job operations.

Provides the JobMixin with queue registration, enqueueing, per-state
statistics, paginated listings and the remediation primitives used by
``QueueRemediationOps``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Any

import aiosqlite

from ..models import (
    CANCELLED_BY_USER,
    JobFilter,
    JobRecord,
    JobState,
    QueueCounts,
    QueueSnapshot,
    utcnow,
)
from .connection import from_db_time, to_db_time

logger = logging.getLogger(__name__)

_JOB_COLUMNS = """
    id, queue_name, job_type, state, priority, data, output, error,
    attempts, max_attempts, created_on, started_on, completed_on
"""


def _row_to_job(row: aiosqlite.Row) -> JobRecord:
    started_on = from_db_time(row["started_on"])
    completed_on = from_db_time(row["completed_on"])
    duration_ms = None
    if started_on and completed_on:
        duration_ms = int((completed_on - started_on).total_seconds() * 1000)
    return JobRecord(
        id=row["id"],
        queue_name=row["queue_name"],
        state=JobState(row["state"]),
        priority=row["priority"],
        created_on=datetime.fromisoformat(row["created_on"]),
        started_on=started_on,
        completed_on=completed_on,
        duration_ms=duration_ms,
        data=json.loads(row["data"]) if row["data"] else {},
        output=json.loads(row["output"]) if row["output"] else None,
        job_type=row["job_type"],
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        error=row["error"],
    )


class JobMixin:
    """Mixin providing queue statistics and job remediation."""

    _conn: aiosqlite.Connection | None
    _write_lock: asyncio.Lock

    def _guard(
        self, backend: str, operation: str
    ) -> AbstractAsyncContextManager[aiosqlite.Connection]: ...

    # =========================================================================
    # Queues and enqueueing
    # =========================================================================

    async def register_queue(
        self, name: str, display_name: str | None = None, description: str = ""
    ) -> None:
        """Create or update a queue definition.

        Args:
            name: Queue name, also the worker type that consumes it.
            display_name: Human readable name. Defaults to ``name``.
            description: Free-form description shown on the dashboard.
        """
        async with self._guard("queue", "register_queue") as conn:
            async with self._write_lock:
                await conn.execute(
                    """
                    INSERT INTO queues (name, display_name, description)
                    VALUES (?, ?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                        display_name = excluded.display_name,
                        description = excluded.description
                    """,
                    (name, display_name or name, description),
                )
                await conn.commit()

    async def enqueue_job(
        self,
        queue_name: str,
        data: dict[str, Any] | None = None,
        *,
        job_type: str | None = None,
        priority: int = 0,
        max_attempts: int = 3,
        job_id: str | None = None,
        state: JobState = JobState.PENDING,
        created_on: datetime | None = None,
    ) -> str:
        """Add a job to a queue.

        The queue is registered on first use.

        Args:
            queue_name: Target queue.
            data: Opaque job payload.
            job_type: Producer-defined type. Defaults to the queue name.
            priority: Higher values are dequeued sooner.
            max_attempts: Attempts allowed before the job fails.
            job_id: Explicit id. A random UUID when omitted.
            state: Initial state, for importing existing jobs.
            created_on: Creation time. Defaults to now.

        Returns:
            The job id.
        """
        new_id = job_id or str(uuid.uuid4())
        async with self._guard("queue", "enqueue_job") as conn:
            async with self._write_lock:
                await conn.execute(
                    "INSERT OR IGNORE INTO queues (name, display_name) VALUES (?, ?)",
                    (queue_name, queue_name),
                )
                await conn.execute(
                    """
                    INSERT INTO jobs (id, queue_name, job_type, state, priority, data,
                                      max_attempts, created_on)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        new_id,
                        queue_name,
                        job_type or queue_name,
                        state.value,
                        priority,
                        json.dumps(data or {}),
                        max_attempts,
                        to_db_time(created_on or utcnow()),
                    ),
                )
                await conn.commit()
        logger.debug("Enqueued job %s on %s", new_id, queue_name)
        return new_id

    async def set_job_state(
        self,
        job_id: str,
        state: JobState,
        *,
        error: str | None = None,
        output: dict[str, Any] | None = None,
    ) -> bool:
        """Move a job to a new state, stamping start/completion times.

        Used by workers reporting progress.

        Returns:
            True if the job exists.
        """
        now = to_db_time(utcnow())
        started = now if state == JobState.ACTIVE else None
        completed = now if state in (JobState.COMPLETED, JobState.FAILED) else None
        async with self._guard("queue", "set_job_state") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    """
                    UPDATE jobs
                    SET state = ?,
                        started_on = COALESCE(?, started_on),
                        completed_on = COALESCE(?, completed_on),
                        attempts = attempts + (CASE WHEN ? = 'active' THEN 1 ELSE 0 END),
                        error = COALESCE(?, error),
                        output = COALESCE(?, output)
                    WHERE id = ?
                    """,
                    (
                        state.value,
                        started,
                        completed,
                        state.value,
                        error,
                        json.dumps(output) if output is not None else None,
                        job_id,
                    ),
                )
                await conn.commit()
                return cursor.rowcount > 0

    # =========================================================================
    # Statistics and listings
    # =========================================================================

    async def list_queue_names(self) -> list[str]:
        """Return all known queue names, sorted."""
        async with self._guard("queue", "list_queue_names") as conn:
            async with conn.execute("SELECT name FROM queues ORDER BY name") as cursor:
                return [row["name"] for row in await cursor.fetchall()]

    async def get_queue_stats(self, queue_names: Sequence[str]) -> list[QueueSnapshot]:
        """Per-state job counts for the given queues.

        Jobs in the ``retry`` state are counted as pending. Queues without
        jobs report zero counts; unknown names are reported the same way.

        Args:
            queue_names: Queues to report, in output order.

        Returns:
            One QueueSnapshot per requested name.
        """
        if not queue_names:
            return []
        placeholders = ",".join("?" for _ in queue_names)
        async with self._guard("queue", "get_stats") as conn:
            async with conn.execute(
                "SELECT name, display_name, description FROM queues "
                f"WHERE name IN ({placeholders})",
                tuple(queue_names),
            ) as cursor:
                meta = {row["name"]: dict(row) for row in await cursor.fetchall()}
            async with conn.execute(
                f"""
                SELECT queue_name, state, COUNT(*) AS count
                FROM jobs
                WHERE queue_name IN ({placeholders})
                GROUP BY queue_name, state
                """,
                tuple(queue_names),
            ) as cursor:
                rows = await cursor.fetchall()

        counts: dict[str, dict[str, int]] = {name: {} for name in queue_names}
        for row in rows:
            state = "pending" if row["state"] == JobState.RETRY.value else row["state"]
            bucket = counts[row["queue_name"]]
            bucket[state] = bucket.get(state, 0) + row["count"]

        snapshots = []
        for name in queue_names:
            info = meta.get(name, {})
            snapshots.append(
                QueueSnapshot(
                    name=name,
                    display_name=info.get("display_name") or name,
                    description=info.get("description") or "",
                    counts=QueueCounts(**counts[name]),
                )
            )
        return snapshots

    async def list_jobs(
        self, job_filter: JobFilter, offset: int, limit: int
    ) -> tuple[list[JobRecord], int]:
        """List jobs newest first.

        Args:
            job_filter: Optional queue, state and type filters.
            offset: Rows to skip.
            limit: Maximum rows to return.

        Returns:
            Tuple of (jobs on this page, total matching jobs).
        """
        clauses: list[str] = []
        params: list[Any] = []
        if job_filter.queue_name:
            clauses.append("queue_name = ?")
            params.append(job_filter.queue_name)
        if job_filter.state:
            clauses.append("state = ?")
            params.append(job_filter.state.value)
        if job_filter.job_type:
            clauses.append("job_type = ?")
            params.append(job_filter.job_type)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        async with self._guard("queue", "list_jobs") as conn:
            async with conn.execute(f"SELECT COUNT(*) FROM jobs {where}", tuple(params)) as cursor:
                row = await cursor.fetchone()
                total = row[0] if row else 0
            async with conn.execute(
                f"""
                SELECT {_JOB_COLUMNS} FROM jobs {where}
                ORDER BY created_on DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ) as cursor:
                jobs = [_row_to_job(r) for r in await cursor.fetchall()]
        return jobs, total

    async def get_job(self, job_id: str) -> JobRecord | None:
        """Fetch one job by id."""
        async with self._guard("queue", "get_job") as conn:
            async with conn.execute(
                f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?", (job_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_job(row) if row else None

    # =========================================================================
    # Remediation
    # =========================================================================

    async def requeue_failed(self, queue_name: str) -> int:
        """Move every failed job of a queue back to pending.

        Payloads are kept; attempts, error and timestamps are cleared.

        Returns:
            Number of jobs re-enqueued.
        """
        async with self._guard("queue", "requeue_failed") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    """
                    UPDATE jobs
                    SET state = 'pending', attempts = 0, error = NULL,
                        started_on = NULL, completed_on = NULL
                    WHERE queue_name = ? AND state = 'failed'
                    """,
                    (queue_name,),
                )
                await conn.commit()
                return cursor.rowcount

    async def remove_jobs(self, queue_name: str, states: Sequence[JobState]) -> int:
        """Delete the jobs of a queue that are in any of ``states``.

        Returns:
            Number of jobs removed.
        """
        if not states:
            return 0
        placeholders = ",".join("?" for _ in states)
        async with self._guard("queue", "remove_jobs") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    f"DELETE FROM jobs WHERE queue_name = ? AND state IN ({placeholders})",
                    (queue_name, *(s.value for s in states)),
                )
                await conn.commit()
                return cursor.rowcount

    async def retry_job(self, job_id: str) -> JobRecord | None:
        """Reset a failed job to pending.

        Returns:
            The updated job, or None if no failed job has this id.
        """
        async with self._guard("queue", "retry_job") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    """
                    UPDATE jobs
                    SET state = 'pending', attempts = 0, error = NULL, output = NULL,
                        started_on = NULL, completed_on = NULL
                    WHERE id = ? AND state = 'failed'
                    """,
                    (job_id,),
                )
                await conn.commit()
                updated = cursor.rowcount > 0
        return await self.get_job(job_id) if updated else None

    async def cancel_job(self, job_id: str, reason: str = CANCELLED_BY_USER) -> JobRecord | None:
        """Mark an unfinished job failed with ``reason`` as its error.

        Returns:
            The updated job, or None if no unfinished job has this id.
        """
        async with self._guard("queue", "cancel_job") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    """
                    UPDATE jobs
                    SET state = 'failed', error = ?, completed_on = ?
                    WHERE id = ? AND state IN ('pending', 'active', 'retry')
                    """,
                    (reason, to_db_time(utcnow()), job_id),
                )
                await conn.commit()
                updated = cursor.rowcount > 0
        return await self.get_job(job_id) if updated else None

    async def purge_jobs(
        self, older_than: datetime, states: Sequence[JobState], dry_run: bool
    ) -> tuple[int, list[str]]:
        """Delete jobs in ``states`` created before ``older_than``.

        Args:
            older_than: Cutoff creation time.
            states: States eligible for deletion.
            dry_run: Count only.

        Returns:
            Tuple of (matching job count, sorted affected queue names).
        """
        if not states:
            return 0, []
        placeholders = ",".join("?" for _ in states)
        where = f"created_on < ? AND state IN ({placeholders})"
        params = (to_db_time(older_than), *(s.value for s in states))

        async with self._guard("queue", "purge_jobs") as conn:
            async with conn.execute(
                f"SELECT queue_name, COUNT(*) AS count FROM jobs WHERE {where} "
                "GROUP BY queue_name ORDER BY queue_name",
                params,
            ) as cursor:
                rows = await cursor.fetchall()
            affected = [row["queue_name"] for row in rows]
            count = sum(row["count"] for row in rows)
            if dry_run or count == 0:
                return count, affected
            async with self._write_lock:
                cursor = await conn.execute(f"DELETE FROM jobs WHERE {where}", params)
                await conn.commit()
                return cursor.rowcount, affected
