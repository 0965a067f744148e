"""Worker heartbeat, command log and per-type configuration storage.

Provides the WorkerMixin. Worker processes call ``record_heartbeat`` and
poll ``next_command``; the control plane reads heartbeats and issues
commands through ``SqliteWorkerBackend``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta
from typing import Any

import aiosqlite

from ..models import WorkerConfiguration, WorkerStatus, utcnow
from .connection import from_db_time, to_db_time

logger = logging.getLogger(__name__)

WORKER_ACTIONS = ("start", "stop", "restart")


class WorkerMixin:
    """Mixin providing worker heartbeats, commands and configuration."""

    _conn: aiosqlite.Connection | None
    _write_lock: asyncio.Lock

    def _guard(
        self, backend: str, operation: str
    ) -> AbstractAsyncContextManager[aiosqlite.Connection]: ...

    # =========================================================================
    # Heartbeats
    # =========================================================================

    async def record_heartbeat(
        self, worker_id: str, status: str = "idle", at: datetime | None = None
    ) -> None:
        """Upsert a worker's heartbeat.

        Args:
            worker_id: Worker process identifier.
            status: 'active' (processing), 'idle' or 'stopped'.
            at: Heartbeat time. Defaults to now.
        """
        async with self._guard("worker", "record_heartbeat") as conn:
            async with self._write_lock:
                await conn.execute(
                    """
                    INSERT INTO workers (worker_id, status, last_heartbeat)
                    VALUES (?, ?, ?)
                    ON CONFLICT(worker_id) DO UPDATE SET
                        status = excluded.status,
                        last_heartbeat = excluded.last_heartbeat
                    """,
                    (worker_id, status, to_db_time(at or utcnow())),
                )
                await conn.commit()

    async def get_worker_status(self, stale_after_seconds: float) -> WorkerStatus:
        """Summarize heartbeats into a WorkerStatus.

        Workers whose last heartbeat is older than ``stale_after_seconds``
        or that reported 'stopped' are not counted.
        """
        cutoff = to_db_time(utcnow() - timedelta(seconds=stale_after_seconds))
        async with self._guard("worker", "get_heartbeat") as conn:
            async with conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END), 0) AS active
                FROM workers
                WHERE status != 'stopped' AND last_heartbeat >= ?
                """,
                (cutoff,),
            ) as cursor:
                row = await cursor.fetchone()
            async with conn.execute("SELECT MAX(last_heartbeat) FROM workers") as cursor:
                latest = await cursor.fetchone()

        total = row["total"] if row else 0
        return WorkerStatus(
            is_running=total > 0,
            last_heartbeat=from_db_time(latest[0]) if latest else None,
            total_workers=total,
            active_workers=row["active"] if row else 0,
        )

    # =========================================================================
    # Commands
    # =========================================================================

    async def issue_command(self, action: str) -> int:
        """Append a lifecycle command for the worker pool.

        Raises:
            ValueError: If ``action`` is not start, stop or restart.

        Returns:
            Command id.
        """
        if action not in WORKER_ACTIONS:
            msg = f"Unknown worker action: {action}"
            raise ValueError(msg)
        async with self._guard("worker", "send_command") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    "INSERT INTO worker_commands (action, issued_at) VALUES (?, ?)",
                    (action, to_db_time(utcnow())),
                )
                await conn.commit()
                command_id = cursor.lastrowid or 0
        logger.info("Issued worker command %s (id=%d)", action, command_id)
        return command_id

    async def next_command(self) -> dict[str, Any] | None:
        """Return the oldest unacknowledged command, if any."""
        async with self._guard("worker", "next_command") as conn:
            async with conn.execute(
                """
                SELECT id, action, issued_at FROM worker_commands
                WHERE acknowledged_at IS NULL
                ORDER BY id LIMIT 1
                """
            ) as cursor:
                row = await cursor.fetchone()
        return dict(row) if row else None

    async def acknowledge_command(self, command_id: int) -> bool:
        """Mark a command as handled by the worker pool."""
        async with self._guard("worker", "acknowledge_command") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    """
                    UPDATE worker_commands SET acknowledged_at = ?
                    WHERE id = ? AND acknowledged_at IS NULL
                    """,
                    (to_db_time(utcnow()), command_id),
                )
                await conn.commit()
                return cursor.rowcount > 0

    # =========================================================================
    # Per-type configuration
    # =========================================================================

    async def get_worker_config(self, worker_id: str) -> WorkerConfiguration | None:
        async with self._guard("config", "get") as conn:
            async with conn.execute(
                """
                SELECT enabled, max_retries, concurrency, updated_at
                FROM worker_configs WHERE worker_id = ?
                """,
                (worker_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_config(row) if row else None

    async def get_all_worker_configs(self) -> dict[str, WorkerConfiguration]:
        async with self._guard("config", "get_all") as conn:
            async with conn.execute(
                """
                SELECT worker_id, enabled, max_retries, concurrency, updated_at
                FROM worker_configs ORDER BY worker_id
                """
            ) as cursor:
                rows = await cursor.fetchall()
        return {row["worker_id"]: _row_to_config(row) for row in rows}

    async def save_worker_config(self, worker_id: str, config: WorkerConfiguration) -> None:
        """Insert or replace one worker type's configuration."""
        async with self._guard("config", "set") as conn:
            async with self._write_lock:
                await conn.execute(
                    """
                    INSERT INTO worker_configs
                        (worker_id, enabled, max_retries, concurrency, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(worker_id) DO UPDATE SET
                        enabled = excluded.enabled,
                        max_retries = excluded.max_retries,
                        concurrency = excluded.concurrency,
                        updated_at = excluded.updated_at
                    """,
                    (
                        worker_id,
                        1 if config.enabled else 0,
                        config.max_retries,
                        config.concurrency,
                        to_db_time(config.updated_at),
                    ),
                )
                await conn.commit()


def _row_to_config(row: aiosqlite.Row) -> WorkerConfiguration:
    return WorkerConfiguration(
        enabled=bool(row["enabled"]),
        max_retries=row["max_retries"],
        concurrency=row["concurrency"],
        updated_at=from_db_time(row["updated_at"]),
    )
