"""Integration tests for heartbeats, the command log and worker configs."""

from __future__ import annotations

from datetime import timedelta

import pytest

from queue_ops.database import SqliteConfigStore, SqliteWorkerBackend
from queue_ops.models import WorkerConfiguration, utcnow


class TestHeartbeats:
    async def test_no_workers_is_not_running(self, db) -> None:
        status = await SqliteWorkerBackend(db).get_heartbeat()
        assert status.is_running is False
        assert status.total_workers == 0
        assert status.last_heartbeat is None

    async def test_fresh_heartbeats_counted(self, db) -> None:
        await db.record_heartbeat("w1", "active")
        await db.record_heartbeat("w2", "idle")

        status = await SqliteWorkerBackend(db).get_heartbeat()

        assert status.is_running is True
        assert (status.total_workers, status.active_workers) == (2, 1)

    async def test_stale_and_stopped_workers_ignored(self, db) -> None:
        await db.record_heartbeat("w1", "active", at=utcnow() - timedelta(minutes=5))
        await db.record_heartbeat("w2", "stopped")

        status = await SqliteWorkerBackend(db, stale_after_seconds=60).get_heartbeat()

        assert status.is_running is False
        assert status.last_heartbeat is not None


class TestCommands:
    async def test_commands_queued_in_order_until_acknowledged(self, db) -> None:
        backend = SqliteWorkerBackend(db)
        assert backend.supports_restart is True
        await backend.send_command("stop")
        await backend.send_command("start")

        first = await db.next_command()
        assert first is not None and first["action"] == "stop"
        assert await db.acknowledge_command(first["id"]) is True
        assert await db.acknowledge_command(first["id"]) is False

        second = await db.next_command()
        assert second is not None and second["action"] == "start"

    async def test_unknown_action_rejected(self, db) -> None:
        with pytest.raises(ValueError):
            await db.issue_command("pause")


class TestConfigStore:
    async def test_set_get_round_trip(self, db) -> None:
        store = SqliteConfigStore(db)
        now = utcnow()
        await store.set("send-email", WorkerConfiguration(False, 3, 10, now))

        config = await store.get("send-email")

        assert config == WorkerConfiguration(False, 3, 10, now)
        assert await store.get("missing") is None

    async def test_overwrite_and_get_all(self, db) -> None:
        store = SqliteConfigStore(db)
        await store.set("process-image", WorkerConfiguration(True, 3, 5))
        await store.set("process-image", WorkerConfiguration(False, 1, 2))
        await store.set("delete-media", WorkerConfiguration())

        configs = await store.get_all()

        assert list(configs) == ["delete-media", "process-image"]
        assert configs["process-image"].concurrency == 2
        assert configs["process-image"].enabled is False
