"""Integration tests for LocalStorageBackend over a temporary directory."""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from queue_ops.backends import LocalStorageBackend
from queue_ops.models import FindingType


def write(root: Path, relative: str, content: bytes = b"data", age_seconds: float = 0) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if age_seconds:
        stamp = time.time() - age_seconds
        os.utime(path, (stamp, stamp))
    return path


@pytest.fixture
def root(tmp_path) -> Path:
    storage_root = tmp_path / "media"
    storage_root.mkdir()
    return storage_root


@pytest.fixture
def storage(db, root) -> LocalStorageBackend:
    return LocalStorageBackend(db, root)


class TestFiles:
    async def test_exists_and_size(self, storage, root) -> None:
        write(root, "2024/01/a.jpg", b"12345")
        assert await storage.exists("2024/01/a.jpg") is True
        assert await storage.file_size("2024/01/a.jpg") == 5
        assert await storage.exists("2024/01/missing.jpg") is False
        assert await storage.file_size("2024/01/missing.jpg") is None

    async def test_path_escaping_root_rejected(self, storage) -> None:
        with pytest.raises(ValueError):
            await storage.exists("../outside.txt")

    async def test_delete_missing_file_returns_false(self, storage, root) -> None:
        write(root, "a.jpg")
        assert await storage.delete("a.jpg") is True
        assert await storage.delete("a.jpg") is False

    async def test_remove_empty_parents_stops_at_root(self, storage, root) -> None:
        write(root, "2024/01/a.jpg")
        write(root, "2024/02/b.jpg")
        await storage.delete("2024/01/a.jpg")

        removed = await storage.remove_empty_parents("2024/01/a.jpg")

        assert removed == 1
        assert not (root / "2024" / "01").exists()
        assert (root / "2024" / "02" / "b.jpg").exists()
        assert root.is_dir()

    async def test_ping(self, storage) -> None:
        await storage.ping()


class TestCandidates:
    async def test_catalog_candidates(self, storage, db) -> None:
        record_id = await db.add_media_file("a.jpg", size_bytes=10)
        await db.flag_media_for_deletion(record_id)
        await db.add_media_file("b.jpg", processing_status="failed")

        pending = await storage.list_candidates(FindingType.PENDING_DELETION_FILES, 50)
        failed = await storage.list_candidates(FindingType.FAILED_PROCESSING_FILES, 50)

        assert [ref.path for ref in pending] == ["a.jpg"]
        assert pending[0].flagged_at is not None
        assert [ref.path for ref in failed] == ["b.jpg"]

    async def test_orphans_exclude_catalogued_files_oldest_first(self, storage, db, root) -> None:
        write(root, "known.jpg")
        write(root, "x/new.bin", age_seconds=10)
        write(root, "y/old.bin", age_seconds=1000)
        await db.add_media_file("known.jpg")

        orphans = await storage.list_candidates(FindingType.PHYSICAL_ORPHANS, 50)

        assert [ref.path for ref in orphans] == ["y/old.bin", "x/new.bin"]
        assert all(ref.record_id is None for ref in orphans)
        assert orphans[0].created_at is not None

    async def test_orphan_scan_honours_limit(self, storage, root) -> None:
        for i in range(5):
            write(root, f"o/{i}.bin", age_seconds=100 - i)
        orphans = await storage.list_candidates(FindingType.PHYSICAL_ORPHANS, 2)
        assert [ref.path for ref in orphans] == ["o/0.bin", "o/1.bin"]
