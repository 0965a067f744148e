"""Local filesystem storage backend.

Pairs a storage root directory with the media catalog in ``QueueOpsDB``.
Blocking filesystem calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from ..database import QueueOpsDB
from ..errors import BackendUnavailableError
from ..models import FileRef, FindingType

logger = logging.getLogger(__name__)


class LocalStorageBackend:
    """StorageBackend over a local directory tree.

    Usage:
        storage = LocalStorageBackend(db, "/var/media")
        refs = await storage.list_candidates(FindingType.ABANDONED_UPLOADS, 50)

    Paths exchanged with callers are relative to ``root`` using forward
    slashes, matching the ``file_path`` column of the catalog.
    """

    def __init__(self, db: QueueOpsDB, root: str | Path) -> None:
        self._db = db
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, path: str) -> Path:
        """Map a relative path to an absolute one inside the root.

        Raises:
            ValueError: If the path escapes the storage root.
        """
        target = (self._root / path).resolve()
        if target != self._root and self._root not in target.parents:
            msg = f"Path escapes storage root: {path}"
            raise ValueError(msg)
        return target

    async def ping(self) -> None:
        if not await asyncio.to_thread(self._root.is_dir):
            raise BackendUnavailableError("storage", "ping", f"{self._root} is not a directory")

    async def list_candidates(self, finding_type: FindingType, max_files: int) -> list[FileRef]:
        if finding_type == FindingType.PHYSICAL_ORPHANS:
            known = await self._db.known_media_paths()
            try:
                return await asyncio.to_thread(self._scan_orphans, known, max_files)
            except OSError as e:
                raise BackendUnavailableError("storage", "list_candidates", str(e)) from e
        return await self._db.list_media_candidates(finding_type, max_files)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self.resolve(path).is_file)

    async def file_size(self, path: str) -> int | None:
        target = self.resolve(path)
        try:
            stat = await asyncio.to_thread(target.stat)
        except FileNotFoundError:
            return None
        return stat.st_size

    async def delete(self, path: str) -> bool:
        """Delete a file. A file that is already gone returns False."""
        target = self.resolve(path)
        try:
            await asyncio.to_thread(target.unlink)
        except FileNotFoundError:
            logger.debug("File already removed: %s", path)
            return False
        logger.info("Deleted %s", path)
        return True

    async def remove_empty_parents(self, path: str) -> int:
        """Remove directories left empty above ``path``, stopping at the root.

        Returns:
            Number of directories removed.
        """
        return await asyncio.to_thread(self._remove_empty_parents, self.resolve(path))

    async def mark_deleted(self, record_id: int) -> None:
        await self._db.mark_media_deleted(record_id)

    async def purge_record(self, record_id: int) -> None:
        await self._db.purge_media_record(record_id)

    def _scan_orphans(self, known: set[str], max_files: int) -> list[FileRef]:
        found: list[tuple[float, str, int]] = []
        if not self._root.is_dir():
            return []
        for file in self._root.rglob("*"):
            if not file.is_file():
                continue
            relative = file.relative_to(self._root).as_posix()
            if relative in known:
                continue
            stat = file.stat()
            found.append((stat.st_mtime, relative, stat.st_size))
        found.sort()
        return [
            FileRef(
                path=relative,
                file_name=relative.rsplit("/", 1)[-1],
                created_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
                size_bytes=size,
            )
            for mtime, relative, size in found[:max_files]
        ]

    def _remove_empty_parents(self, target: Path) -> int:
        removed = 0
        parent = target.parent
        while parent != self._root and self._root in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                # Not empty, or already gone
                break
            removed += 1
            logger.debug("Removed empty directory %s", parent)
            parent = parent.parent
        return removed
