"""Integration tests for the job tables of QueueOpsDB."""

from __future__ import annotations

from datetime import timedelta

import pytest

from queue_ops.database import SqliteQueueBackend
from queue_ops.errors import BackendUnavailableError
from queue_ops.models import CANCELLED_BY_USER, JobFilter, JobState, utcnow


class TestStats:
    async def test_counts_per_state_with_retry_as_pending(self, db) -> None:
        await db.register_queue("process-image", "Image Processing", "Thumbnails")
        for state in (JobState.PENDING, JobState.RETRY, JobState.ACTIVE, JobState.FAILED):
            await db.enqueue_job("process-image", state=state)
        await db.enqueue_job("send-email", state=JobState.COMPLETED)

        snapshots = await db.get_queue_stats(["process-image", "send-email"])

        image, email = snapshots
        assert image.display_name == "Image Processing"
        assert image.counts.to_dict() == {
            "pending": 2,
            "active": 1,
            "completed": 0,
            "failed": 1,
            "total": 4,
        }
        assert email.counts.completed == 1

    async def test_queue_names_sorted(self, db) -> None:
        await db.enqueue_job("send-email")
        await db.enqueue_job("delete-media")
        assert await db.list_queue_names() == ["delete-media", "send-email"]

    async def test_empty_queue_reports_zero(self, db) -> None:
        await db.register_queue("housekeeping")
        (snapshot,) = await db.get_queue_stats(["housekeeping"])
        assert snapshot.counts.total == 0


class TestListing:
    async def test_newest_first_with_total(self, db) -> None:
        now = utcnow()
        for i in range(5):
            await db.enqueue_job(
                "process-image", {"n": i}, job_id=f"job-{i}", created_on=now + timedelta(seconds=i)
            )

        jobs, total = await db.list_jobs(JobFilter(), offset=1, limit=2)

        assert total == 5
        assert [job.id for job in jobs] == ["job-3", "job-2"]

    async def test_filters(self, db) -> None:
        await db.enqueue_job("process-image", job_type="thumbnail", state=JobState.FAILED)
        await db.enqueue_job("process-image", job_type="resize", state=JobState.FAILED)
        await db.enqueue_job("send-email", state=JobState.FAILED)

        jobs, total = await db.list_jobs(
            JobFilter(queue_name="process-image", state=JobState.FAILED, job_type="resize"), 0, 10
        )

        assert total == 1
        assert jobs[0].job_type == "resize"

    async def test_job_detail_round_trips_payload(self, db) -> None:
        job_id = await db.enqueue_job("process-image", {"media_id": 42, "sizes": [64, 128]})
        await db.set_job_state(job_id, JobState.ACTIVE)
        await db.set_job_state(job_id, JobState.COMPLETED, output={"ok": True})

        job = await db.get_job(job_id)

        assert job is not None
        assert job.data == {"media_id": 42, "sizes": [64, 128]}
        assert job.output == {"ok": True}
        assert job.attempts == 1
        assert job.duration_ms is not None

    async def test_unknown_job_is_none(self, db) -> None:
        assert await db.get_job("missing") is None


class TestRemediation:
    async def test_requeue_failed_keeps_payloads(self, db) -> None:
        ids = [
            await db.enqueue_job("process-image", {"media_id": i}, state=JobState.FAILED)
            for i in range(3)
        ]
        await db.enqueue_job("process-image", state=JobState.COMPLETED)

        assert await db.requeue_failed("process-image") == 3

        for i, job_id in enumerate(ids):
            job = await db.get_job(job_id)
            assert job is not None
            assert job.state == JobState.PENDING
            assert job.data == {"media_id": i}
            assert job.error is None

    async def test_remove_jobs_by_state(self, db) -> None:
        await db.enqueue_job("process-image", state=JobState.FAILED)
        await db.enqueue_job("process-image", state=JobState.COMPLETED)
        await db.enqueue_job("send-email", state=JobState.FAILED)

        removed = await db.remove_jobs("process-image", [JobState.FAILED])

        assert removed == 1
        (snapshot,) = await db.get_queue_stats(["process-image"])
        assert snapshot.counts.completed == 1
        assert snapshot.counts.failed == 0

    async def test_retry_only_failed(self, db) -> None:
        failed_id = await db.enqueue_job("process-image", state=JobState.FAILED)
        active_id = await db.enqueue_job("process-image", state=JobState.ACTIVE)

        retried = await db.retry_job(failed_id)

        assert retried is not None and retried.state == JobState.PENDING
        assert await db.retry_job(active_id) is None

    async def test_cancel_marks_failed_with_reason(self, db) -> None:
        job_id = await db.enqueue_job("process-image")

        cancelled = await db.cancel_job(job_id)

        assert cancelled is not None
        assert cancelled.state == JobState.FAILED
        assert cancelled.error == CANCELLED_BY_USER
        assert await db.cancel_job(job_id) is None

    async def test_purge_respects_cutoff_and_states(self, db) -> None:
        old = utcnow() - timedelta(days=40)
        await db.enqueue_job("process-image", state=JobState.COMPLETED, created_on=old)
        await db.enqueue_job("send-email", state=JobState.FAILED, created_on=old)
        await db.enqueue_job("send-email", state=JobState.PENDING, created_on=old)
        await db.enqueue_job("send-email", state=JobState.COMPLETED)

        cutoff = utcnow() - timedelta(days=30)
        preview = await db.purge_jobs(cutoff, [JobState.COMPLETED, JobState.FAILED], dry_run=True)
        assert preview == (2, ["process-image", "send-email"])
        jobs, total = await db.list_jobs(JobFilter(), 0, 10)
        assert total == 4

        purged = await db.purge_jobs(cutoff, [JobState.COMPLETED, JobState.FAILED], dry_run=False)
        assert purged == (2, ["process-image", "send-email"])
        jobs, total = await db.list_jobs(JobFilter(), 0, 10)
        assert sorted(job.state.value for job in jobs) == ["completed", "pending"]


class TestBackendErrors:
    async def test_driver_error_becomes_backend_unavailable(self, db) -> None:
        await db.execute_update("DROP TABLE jobs")
        backend = SqliteQueueBackend(db)

        with pytest.raises(BackendUnavailableError) as exc_info:
            await backend.get_job("job-1")

        assert exc_info.value.backend == "queue"
        assert exc_info.value.operation == "get_job"
