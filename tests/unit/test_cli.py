"""Tests for the queue-ops CLI.

Commands run against a temporary SQLite database through CliRunner.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from queue_ops.cli import cli
from queue_ops.config import DEFAULT_WORKERS
from queue_ops.database import QueueOpsDB
from queue_ops.models import JobState


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config with a short confirmation timeout and a temp storage root."""
    storage = tmp_path / "storage"
    storage.mkdir()
    path = tmp_path / "queue_ops.toml"
    path.write_text(
        f"""
[storage]
root = "{storage.as_posix()}"

[workers]
confirm_timeout_seconds = 0.1
confirm_poll_interval_seconds = 0.05
""",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def invoke(runner: CliRunner, tmp_path: Path, config_file: Path):
    """Invoke the CLI with --config and --db pointing at temp files."""
    db_path = tmp_path / "queue_ops.db"

    def _invoke(*args: str):
        return runner.invoke(cli, ["--config", str(config_file), "--db", str(db_path), *args])

    _invoke.db_path = db_path
    return _invoke


def seed(db_path: Path) -> None:
    async def _seed() -> None:
        async with QueueOpsDB(db_path) as db:
            await db.enqueue_job("process-image", {"n": 1}, job_id="f1", state=JobState.FAILED)
            await db.enqueue_job("process-image", {"n": 2}, job_id="f2", state=JobState.FAILED)
            await db.enqueue_job("process-image", job_id="p1")

    asyncio.run(_seed())


class TestCLIStructure:
    def test_help_lists_groups(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("stats", "workers", "queues", "jobs", "housekeeping", "serve"):
            assert command in result.output

    def test_invalid_command_fails(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["nonexistent"])
        assert result.exit_code != 0

    def test_missing_config_file_exits_1(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["--config", str(tmp_path / "nope.toml"), "stats"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestStatsAndQueues:
    def test_stats_on_seeded_database(self, invoke) -> None:
        seed(invoke.db_path)

        result = invoke("stats")

        assert result.exit_code == 0, result.output
        body = json.loads(result.stdout)
        counts = body["queues"][0]["counts"]
        assert (counts["failed"], counts["pending"]) == (2, 1)

    def test_reprocess(self, invoke) -> None:
        seed(invoke.db_path)

        result = invoke("queues", "reprocess", "process-image")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["affected"] == 2

    def test_empty_with_pending(self, invoke) -> None:
        seed(invoke.db_path)

        result = invoke("queues", "empty", "process-image", "--include-pending")

        assert json.loads(result.stdout)["affected"] == 3

    def test_cleanup_rejects_unknown_state(self, invoke) -> None:
        result = invoke("queues", "cleanup", "--state", "exploded")
        assert result.exit_code == 2

    def test_cleanup_dry_run(self, invoke) -> None:
        result = invoke("queues", "cleanup", "--dry-run", "--state", "failed")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {
            "deleted_count": 0,
            "dry_run": True,
            "affected_queues": [],
        }


class TestJobs:
    def test_retry_failed_job(self, invoke) -> None:
        seed(invoke.db_path)

        result = invoke("jobs", "retry", "f1")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["state"] == "pending"

    def test_retry_unknown_job_exits_1(self, invoke) -> None:
        result = invoke("jobs", "retry", "nope")
        assert result.exit_code == 1
        assert "Error: Job nope not found" in result.output

    def test_cancel_pending_job(self, invoke) -> None:
        seed(invoke.db_path)

        result = invoke("jobs", "cancel", "p1")

        assert json.loads(result.stdout)["state"] == "failed"


class TestWorkers:
    def test_config_lists_defaults(self, invoke) -> None:
        result = invoke("workers", "config")

        assert result.exit_code == 0, result.output
        assert set(json.loads(result.stdout)) == set(DEFAULT_WORKERS)

    def test_config_update(self, invoke) -> None:
        result = invoke("workers", "config", "send-email", "--concurrency", "4")

        assert result.exit_code == 0, result.output
        body = json.loads(result.stdout)
        assert (body["worker_id"], body["concurrency"]) == ("send-email", 4)

    def test_update_requires_worker_id(self, invoke) -> None:
        result = invoke("workers", "config", "--concurrency", "4")
        assert result.exit_code == 1

    def test_unknown_worker_exits_1(self, invoke) -> None:
        result = invoke("workers", "enable", "send-fax")
        assert result.exit_code == 1
        assert "send-fax" in result.output

    def test_disable_persists(self, invoke) -> None:
        invoke("workers", "disable", "process-image")

        result = invoke("workers", "config", "process-image")

        assert json.loads(result.stdout)["enabled"] is False

    def test_start_without_heartbeat_warns(self, invoke) -> None:
        result = invoke("workers", "start")

        assert result.exit_code == 0, result.output
        assert "Warning: start sent, awaiting heartbeat confirmation" in result.output

    def test_status(self, invoke) -> None:
        result = invoke("workers", "status")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["state"] == "stopped"


class TestHousekeeping:
    def test_run_defaults_to_dry_run(self, invoke) -> None:
        result = invoke("housekeeping", "run")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["dry_run"] is True

    def test_execute_flag(self, invoke) -> None:
        result = invoke("housekeeping", "run", "--execute", "--max-files", "10")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["dry_run"] is False

    def test_analyze(self, invoke) -> None:
        result = invoke("housekeeping", "analyze")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["total_cleaned"] == 0


class TestServe:
    def test_serve_passes_paths_to_runner(self, invoke, config_file: Path) -> None:
        with patch("queue_ops.api.serve.run_server") as mock_run:
            result = invoke("serve", "--port", "9001")

        assert result.exit_code == 0, result.output
        kwargs = mock_run.call_args.kwargs
        assert kwargs["port"] == 9001
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["db_path"] == str(invoke.db_path)
        assert kwargs["config_path"] == str(config_file)
