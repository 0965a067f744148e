"""CLI for the queue control plane.

Commands operate on the control plane in-process over the configured
database and storage root. ``serve`` starts the REST API.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import replace
from pathlib import Path
from typing import Any, TypeVar

import click

from .circuit_breaker import CircuitOpenError
from .config import Settings, load_settings
from .control_plane import ControlPlane
from .errors import QueueOpsError
from .models import JobState

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

T = TypeVar("T")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Config file (TOML)")
@click.option("--db", "db_path", type=click.Path(dir_okay=False), help="Database path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: str | None, db_path: str | None) -> None:
    """Queue Ops - monitoring and control plane for background job queues."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["db_path"] = db_path


def _settings(ctx: click.Context) -> Settings:
    config_path = ctx.obj.get("config_path")
    try:
        settings = load_settings(Path(config_path) if config_path else None)
    except (FileNotFoundError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if ctx.obj.get("db_path"):
        settings = replace(settings, db_path=ctx.obj["db_path"])
    return settings


def _run(ctx: click.Context, operation: Callable[[ControlPlane], Awaitable[T]]) -> T:
    """Run ``operation`` against a started control plane, exiting 1 on failure."""
    settings = _settings(ctx)

    async def _with_plane() -> T:
        async with ControlPlane.from_settings(settings) as plane:
            return await operation(plane)

    try:
        return asyncio.run(_with_plane())
    except CircuitOpenError as exc:
        click.echo(f"Error: {exc} (retry in {exc.time_until_retry:.0f}s)", err=True)
    except (QueueOpsError, ValueError, LookupError) as exc:
        click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


def _echo_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2))


@cli.command()
@click.option("--refresh", is_flag=True, help="Bypass the snapshot cache")
@click.pass_context
def stats(ctx: click.Context, refresh: bool) -> None:
    """Show queue counts, recent jobs, worker status and health."""
    snapshot = _run(ctx, lambda plane: plane.stats.get_snapshot(force_refresh=refresh))
    _echo_json(snapshot.to_dict())


# ----------------------------------------------------------------------
# Workers
# ----------------------------------------------------------------------


@cli.group()
def workers() -> None:
    """Worker lifecycle and configuration commands."""
    pass


@workers.command(name="status")
@click.pass_context
def workers_status(ctx: click.Context) -> None:
    """Show the worker lifecycle state."""
    status = _run(ctx, lambda plane: plane.lifecycle.status())
    _echo_json(status.to_dict())


def _lifecycle_command(action: str) -> Callable[[click.Context], None]:
    @click.pass_context
    def command(ctx: click.Context) -> None:
        result = _run(ctx, lambda plane: getattr(plane.lifecycle, action)())
        _echo_json(result.to_dict())
        if result.command_sent and not result.confirmed:
            click.echo(f"Warning: {result.message}", err=True)

    command.__doc__ = f"{action.capitalize()} the worker pool."
    return command


workers.command(name="start")(_lifecycle_command("start"))
workers.command(name="stop")(_lifecycle_command("stop"))
workers.command(name="restart")(_lifecycle_command("restart"))


@workers.command(name="config")
@click.argument("worker_id", required=False)
@click.option("--max-retries", type=click.IntRange(min=0), help="Set max retries")
@click.option("--concurrency", type=click.IntRange(min=1), help="Set concurrency")
@click.pass_context
def workers_config(
    ctx: click.Context,
    worker_id: str | None,
    max_retries: int | None,
    concurrency: int | None,
) -> None:
    """Show worker configuration, or update one worker type."""
    changes = {
        key: value
        for key, value in (("max_retries", max_retries), ("concurrency", concurrency))
        if value is not None
    }
    if worker_id is None:
        if changes:
            click.echo("Error: WORKER_ID is required when updating", err=True)
            sys.exit(1)
        configs = _run(ctx, lambda plane: plane.config_registry.get_all())
        _echo_json({wid: cfg.to_dict() for wid, cfg in configs.items()})
        return

    if changes:
        config = _run(ctx, lambda plane: plane.config_registry.update(worker_id, **changes))
    else:
        config = _run(ctx, lambda plane: plane.config_registry.get(worker_id))
    _echo_json({"worker_id": worker_id, **config.to_dict()})


@workers.command(name="enable")
@click.argument("worker_id")
@click.pass_context
def workers_enable(ctx: click.Context, worker_id: str) -> None:
    """Enable a worker type."""
    config = _run(ctx, lambda plane: plane.config_registry.set_enabled(worker_id, True))
    _echo_json({"worker_id": worker_id, **config.to_dict()})


@workers.command(name="disable")
@click.argument("worker_id")
@click.pass_context
def workers_disable(ctx: click.Context, worker_id: str) -> None:
    """Disable a worker type."""
    config = _run(ctx, lambda plane: plane.config_registry.set_enabled(worker_id, False))
    _echo_json({"worker_id": worker_id, **config.to_dict()})


# ----------------------------------------------------------------------
# Queues and jobs
# ----------------------------------------------------------------------


@cli.group()
def queues() -> None:
    """Queue remediation commands."""
    pass


@queues.command(name="reprocess")
@click.argument("queue_name")
@click.pass_context
def queues_reprocess(ctx: click.Context, queue_name: str) -> None:
    """Re-enqueue every failed job in QUEUE_NAME."""
    result = _run(ctx, lambda plane: plane.remediation.reprocess(queue_name))
    _echo_json(result.to_dict())


@queues.command(name="empty")
@click.argument("queue_name")
@click.option("--include-completed", is_flag=True, help="Also remove completed jobs")
@click.option("--include-pending", is_flag=True, help="Also remove pending jobs")
@click.option("--include-active", is_flag=True, help="Also remove active jobs")
@click.pass_context
def queues_empty(
    ctx: click.Context,
    queue_name: str,
    include_completed: bool,
    include_pending: bool,
    include_active: bool,
) -> None:
    """Remove failed jobs from QUEUE_NAME."""
    result = _run(
        ctx,
        lambda plane: plane.remediation.empty(
            queue_name,
            keep_completed=not include_completed,
            include_pending=include_pending,
            include_active=include_active,
        ),
    )
    _echo_json(result.to_dict())


@queues.command(name="cleanup")
@click.option("--older-than-days", default=30, show_default=True, type=click.IntRange(min=1))
@click.option(
    "--state",
    "states",
    multiple=True,
    type=click.Choice([state.value for state in JobState]),
    help="State to purge (repeatable, default: completed and failed)",
)
@click.option("--dry-run", is_flag=True, help="Count only")
@click.pass_context
def queues_cleanup(
    ctx: click.Context, older_than_days: int, states: tuple[str, ...], dry_run: bool
) -> None:
    """Purge finished jobs older than the retention window."""
    kwargs: dict[str, Any] = {"older_than_days": older_than_days, "dry_run": dry_run}
    if states:
        kwargs["states"] = [JobState(state) for state in states]
    result = _run(ctx, lambda plane: plane.remediation.purge_old_jobs(**kwargs))
    _echo_json(result.to_dict())


@cli.group()
def jobs() -> None:
    """Single-job commands."""
    pass


@jobs.command(name="retry")
@click.argument("job_id")
@click.pass_context
def jobs_retry(ctx: click.Context, job_id: str) -> None:
    """Retry a failed job."""
    job = _run(ctx, lambda plane: plane.remediation.retry_job(job_id))
    _echo_json(job.to_dict())


@jobs.command(name="cancel")
@click.argument("job_id")
@click.pass_context
def jobs_cancel(ctx: click.Context, job_id: str) -> None:
    """Cancel a pending, active or retrying job."""
    job = _run(ctx, lambda plane: plane.remediation.cancel_job(job_id))
    _echo_json(job.to_dict())


# ----------------------------------------------------------------------
# Housekeeping
# ----------------------------------------------------------------------


@cli.group()
def housekeeping() -> None:
    """Storage housekeeping commands."""
    pass


@housekeeping.command(name="analyze")
@click.pass_context
def housekeeping_analyze(ctx: click.Context) -> None:
    """Report what a housekeeping run would clean, without deleting."""
    result = _run(ctx, lambda plane: plane.housekeeping.analyze())
    _echo_json(result.to_dict())


@housekeeping.command(name="run")
@click.option("--execute", is_flag=True, help="Delete files (default is a dry run)")
@click.option("--max-files", type=click.IntRange(min=1, max=1000), help="Files per detection type")
@click.option("--grace-period-hours", type=click.IntRange(min=0), help="Minimum flag age")
@click.pass_context
def housekeeping_run(
    ctx: click.Context,
    execute: bool,
    max_files: int | None,
    grace_period_hours: int | None,
) -> None:
    """Run housekeeping with the configured defaults and overrides."""

    async def operation(plane: ControlPlane) -> Any:
        overrides: dict[str, Any] = {"dry_run": not execute}
        if max_files is not None:
            overrides["max_files"] = max_files
        if grace_period_hours is not None:
            overrides["grace_period_hours"] = grace_period_hours
        config = replace(plane.housekeeping.defaults, **overrides)
        return await plane.housekeeping.run(config)

    result = _run(ctx, operation)
    _echo_json(result.to_dict())
    if result.errors:
        sys.exit(1)


# ----------------------------------------------------------------------
# Server
# ----------------------------------------------------------------------


@cli.command()
@click.option("--host", default=None, help="Host to bind to (default: from config)")
@click.option("--port", default=None, type=int, help="Port to bind to (default: from config)")
@click.option("--reload", is_flag=True, help="Enable auto-reload on code changes")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["critical", "error", "warning", "info", "debug"]),
    help="Uvicorn log level",
)
@click.pass_context
def serve(
    ctx: click.Context, host: str | None, port: int | None, reload: bool, log_level: str
) -> None:
    """Start the API server."""
    from .api.serve import run_server

    settings = _settings(ctx)
    run_server(
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_level=log_level,
        reload=reload,
        db_path=ctx.obj.get("db_path"),
        config_path=ctx.obj.get("config_path"),
    )


def main() -> None:
    """Entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
