"""Media catalog operations.

Provides the MediaMixin: the records that reference files on storage,
queried by housekeeping to find cleanup candidates.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime

import aiosqlite

from ..models import FileRef, FindingType, utcnow
from .connection import from_db_time, to_db_time

logger = logging.getLogger(__name__)

# Candidate queries per catalog-backed detection type, oldest first
_CANDIDATE_QUERIES: dict[FindingType, str] = {
    FindingType.PENDING_DELETION_FILES: (
        "WHERE status = 'pending_deletion' ORDER BY COALESCE(flagged_at, created_at), id"
    ),
    FindingType.DELETED_STATUS_FILES: "WHERE status = 'deleted' ORDER BY created_at, id",
    FindingType.FAILED_PROCESSING_FILES: (
        "WHERE processing_status = 'failed' AND status != 'deleted' ORDER BY created_at, id"
    ),
    FindingType.ABANDONED_UPLOADS: "WHERE status = 'uploading' ORDER BY created_at, id",
}


def _row_to_ref(row: aiosqlite.Row) -> FileRef:
    return FileRef(
        path=row["file_path"],
        file_name=row["file_name"],
        record_id=row["id"],
        status=row["status"],
        processing_status=row["processing_status"],
        created_at=from_db_time(row["created_at"]),
        flagged_at=from_db_time(row["flagged_at"]),
        size_bytes=row["size_bytes"],
    )


class MediaMixin:
    """Mixin providing media catalog queries and updates."""

    _conn: aiosqlite.Connection | None
    _write_lock: asyncio.Lock

    def _guard(
        self, backend: str, operation: str
    ) -> AbstractAsyncContextManager[aiosqlite.Connection]: ...

    async def add_media_file(
        self,
        file_path: str,
        *,
        file_name: str | None = None,
        size_bytes: int | None = None,
        status: str = "active",
        processing_status: str | None = None,
        created_at: datetime | None = None,
        flagged_at: datetime | None = None,
    ) -> int:
        """Register a file in the catalog.

        Args:
            file_path: Path relative to the storage root.
            file_name: Display name. Defaults to the last path component.
            size_bytes: Known size.
            status: uploading, active, pending_deletion or deleted.
            processing_status: pending, processing, completed or failed.
            created_at: Creation time. Defaults to now.
            flagged_at: When the file was flagged for deletion.

        Returns:
            Record id.
        """
        async with self._guard("storage", "add_media_file") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    """
                    INSERT INTO media_files
                        (file_path, file_name, size_bytes, status, processing_status,
                         created_at, flagged_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        file_path,
                        file_name or file_path.rsplit("/", 1)[-1],
                        size_bytes,
                        status,
                        processing_status,
                        to_db_time(created_at or utcnow()),
                        to_db_time(flagged_at),
                    ),
                )
                await conn.commit()
                return cursor.lastrowid or 0

    async def flag_media_for_deletion(self, record_id: int, at: datetime | None = None) -> bool:
        """Set a record to pending_deletion, starting its grace period."""
        async with self._guard("storage", "flag_for_deletion") as conn:
            async with self._write_lock:
                cursor = await conn.execute(
                    """
                    UPDATE media_files SET status = 'pending_deletion', flagged_at = ?
                    WHERE id = ? AND status != 'deleted'
                    """,
                    (to_db_time(at or utcnow()), record_id),
                )
                await conn.commit()
                return cursor.rowcount > 0

    async def list_media_candidates(self, finding_type: FindingType, limit: int) -> list[FileRef]:
        """Catalog records matching a detection type, oldest first.

        Raises:
            ValueError: For ``physical_orphans``, which is not catalog-backed.
        """
        clause = _CANDIDATE_QUERIES.get(finding_type)
        if clause is None:
            msg = f"{finding_type.value} has no catalog query"
            raise ValueError(msg)
        async with self._guard("storage", "list_candidates") as conn:
            async with conn.execute(
                f"""
                SELECT id, file_path, file_name, size_bytes, status, processing_status,
                       created_at, flagged_at
                FROM media_files {clause} LIMIT ?
                """,
                (limit,),
            ) as cursor:
                return [_row_to_ref(row) for row in await cursor.fetchall()]

    async def known_media_paths(self) -> set[str]:
        """All file paths referenced by the catalog."""
        async with self._guard("storage", "known_paths") as conn:
            async with conn.execute("SELECT file_path FROM media_files") as cursor:
                return {row["file_path"] for row in await cursor.fetchall()}

    async def get_media_file(self, record_id: int) -> FileRef | None:
        async with self._guard("storage", "get_media_file") as conn:
            async with conn.execute(
                """
                SELECT id, file_path, file_name, size_bytes, status, processing_status,
                       created_at, flagged_at
                FROM media_files WHERE id = ?
                """,
                (record_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return _row_to_ref(row) if row else None

    async def mark_media_deleted(self, record_id: int) -> None:
        """First phase of a two-phase delete: the record stays, status deleted."""
        async with self._guard("storage", "mark_deleted") as conn:
            async with self._write_lock:
                await conn.execute(
                    "UPDATE media_files SET status = 'deleted' WHERE id = ?", (record_id,)
                )
                await conn.commit()

    async def purge_media_record(self, record_id: int) -> None:
        """Remove a catalog record."""
        async with self._guard("storage", "purge_record") as conn:
            async with self._write_lock:
                await conn.execute("DELETE FROM media_files WHERE id = ?", (record_id,))
                await conn.commit()
