"""Composed QueueOpsDB class.

Combines all mixin classes into the final QueueOpsDB that provides the
complete database API.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .connection import ConnectionMixin
from .jobs import JobMixin
from .media import MediaMixin
from .workers import WorkerMixin


class QueueOpsDB(ConnectionMixin, JobMixin, WorkerMixin, MediaMixin):
    """Async SQLite database holding jobs, workers, worker configs and media.

    Usage:
        async with QueueOpsDB("queue_ops.db") as db:
            job_id = await db.enqueue_job("process-image", {"mediaId": 42})
            stats = await db.get_queue_stats(["process-image"])
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. Use ":memory:" for testing.
                     Defaults to queue_ops.db in the current working directory.
        """
        super().__init__(db_path)

    async def __aenter__(self) -> QueueOpsDB:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit."""
        await self.close()
