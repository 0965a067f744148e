"""End-to-end flows through ControlPlane over SQLite and a temp storage root."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from queue_ops.config import DEFAULT_WORKERS
from queue_ops.errors import InvalidJobStateError, JobNotFoundError
from queue_ops.housekeeping import HousekeepingConfig
from queue_ops.models import JobState, utcnow
from queue_ops.workers import WorkerState


def counts_for(snapshot, queue_name: str):
    return next(q.counts for q in snapshot.queues if q.name == queue_name)


class TestStartup:
    async def test_defaults_seeded_once(self, plane) -> None:
        configs = await plane.config_registry.get_all()
        assert set(configs) == set(DEFAULT_WORKERS)

        await plane.config_registry.update("send-email", concurrency=2)
        added = await plane.config_registry.seed_defaults(DEFAULT_WORKERS)

        assert added == []
        assert (await plane.config_registry.get("send-email")).concurrency == 2

    async def test_start_is_idempotent(self, plane) -> None:
        job_id = await plane.db.enqueue_job("process-image", {"id": 1})
        await plane.start()
        assert (await plane.remediation.get_job_detail(job_id)).queue_name == "process-image"

    async def test_workers_observed_stopped_without_heartbeat(self, plane) -> None:
        assert plane.lifecycle.state == WorkerState.STOPPED


class TestRemediationFlow:
    async def test_reprocess_keeps_payloads_and_refreshes_stats(self, plane) -> None:
        for i in range(3):
            await plane.db.enqueue_job("process-image", {"n": i}, state=JobState.FAILED)
        await plane.db.enqueue_job("process-image", state=JobState.COMPLETED)

        before = await plane.stats.get_snapshot()
        assert counts_for(before, "process-image").failed == 3

        result = await plane.remediation.reprocess("process-image")

        after = await plane.stats.get_snapshot()
        assert result.affected == 3
        assert counts_for(after, "process-image").failed == 0
        assert counts_for(after, "process-image").pending == 3
        page = await plane.remediation.list_jobs("process-image", state=JobState.PENDING)
        assert sorted(job.data["n"] for job in page.jobs) == [0, 1, 2]

    async def test_empty_keeps_completed_by_default(self, plane) -> None:
        await plane.db.enqueue_job("send-email", state=JobState.FAILED)
        await plane.db.enqueue_job("send-email", state=JobState.COMPLETED)
        await plane.db.enqueue_job("send-email", state=JobState.PENDING)

        result = await plane.remediation.empty("send-email")

        snapshot = await plane.stats.get_snapshot()
        counts = counts_for(snapshot, "send-email")
        assert result.affected == 1
        assert (counts.failed, counts.completed, counts.pending) == (0, 1, 1)

    async def test_retry_then_retry_again_conflicts(self, plane) -> None:
        job_id = await plane.db.enqueue_job("process-video", state=JobState.FAILED)

        job = await plane.remediation.retry_job(job_id)

        assert job.state == JobState.PENDING
        with pytest.raises(InvalidJobStateError):
            await plane.remediation.retry_job(job_id)

    async def test_unknown_job(self, plane) -> None:
        with pytest.raises(JobNotFoundError):
            await plane.remediation.cancel_job("missing")


class TestWorkerFlow:
    async def test_start_unconfirmed_without_heartbeat(self, plane) -> None:
        result = await plane.lifecycle.start()

        assert result.command_sent is True
        assert result.confirmed is False
        assert result.state == WorkerState.STARTING
        command = await plane.db.next_command()
        assert command is not None and command["action"] == "start"

    async def test_start_confirmed_by_heartbeat(self, plane) -> None:
        await plane.db.record_heartbeat("w1", "active")

        result = await plane.lifecycle.start()

        assert result.confirmed is True
        assert result.state == WorkerState.RUNNING
        snapshot = await plane.stats.get_snapshot()
        assert snapshot.worker_status.is_running is True

    async def test_config_change_visible_in_next_read(self, plane) -> None:
        await plane.config_registry.set_enabled("process-video", True)
        assert await plane.config_registry.is_enabled("process-video") is True


class TestHousekeepingFlow:
    async def test_two_phase_cleanup_of_flagged_file(self, plane) -> None:
        root = Path(plane.settings.storage_root)
        target = root / "2024" / "05" / "old.jpg"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"x" * 128)
        record_id = await plane.db.add_media_file("2024/05/old.jpg")
        await plane.db.flag_media_for_deletion(record_id, at=utcnow() - timedelta(hours=48))

        preview = await plane.housekeeping.analyze()
        assert preview.total_cleaned == 1
        assert preview.total_size_freed == 128
        assert target.exists()

        result = await plane.housekeeping.run(HousekeepingConfig(dry_run=False))

        assert result.total_cleaned == 1
        assert result.errors == []
        assert not target.exists()
        assert not (root / "2024").exists()
        assert await plane.db.get_media_file(record_id) is None

    async def test_analyze_matches_run_when_types_overlap(self, plane) -> None:
        root = Path(plane.settings.storage_root)
        (root / "both.jpg").write_bytes(b"x" * 100)
        record_id = await plane.db.add_media_file(
            "both.jpg",
            status="pending_deletion",
            processing_status="failed",
            flagged_at=utcnow() - timedelta(hours=25),
        )

        preview = await plane.housekeeping.analyze()
        result = await plane.housekeeping.run(HousekeepingConfig(dry_run=False))

        assert (preview.total_cleaned, preview.total_size_freed) == (1, 100)
        assert (result.total_cleaned, result.total_size_freed) == (1, 100)
        assert not (root / "both.jpg").exists()
        assert await plane.db.get_media_file(record_id) is None

    async def test_recent_flag_within_grace_is_kept(self, plane) -> None:
        root = Path(plane.settings.storage_root)
        (root / "fresh.jpg").write_bytes(b"x")
        record_id = await plane.db.add_media_file("fresh.jpg")
        await plane.db.flag_media_for_deletion(record_id)

        result = await plane.housekeeping.run(HousekeepingConfig(dry_run=False))

        assert result.total_cleaned == 0
        assert (root / "fresh.jpg").exists()
