"""Queue endpoints.

Endpoints:
- GET /queues/stats - Dashboard snapshot (queues, recent jobs, workers, health)
- POST /queues/cleanup - Age-based retention purge
- POST /queues/{name}/reprocess - Re-enqueue failed jobs
- POST /queues/{name}/empty - Remove failed (and optionally other) jobs
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from ...control_plane import ControlPlane
from ..dependencies import get_control_plane_dep
from ..models.requests import EmptyQueueRequest, PurgeJobsRequest

router = APIRouter()


@router.get("/stats")
async def get_stats(
    refresh: bool = False, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    """Return the current stats snapshot.

    Args:
        refresh: Bypass the snapshot cache.
        plane: Control plane dependency (injected).
    """
    snapshot = await plane.stats.get_snapshot(force_refresh=refresh)
    return snapshot.to_dict()


@router.post("/cleanup")
async def cleanup_jobs(
    request: PurgeJobsRequest | None = Body(default=None),
    plane: ControlPlane = Depends(get_control_plane_dep),
) -> dict[str, Any]:
    """Purge jobs older than the retention window."""
    request = request or PurgeJobsRequest()
    result = await plane.remediation.purge_old_jobs(
        older_than_days=request.older_than_days,
        states=request.states,
        dry_run=request.dry_run,
    )
    return result.to_dict()


@router.post("/{queue_name}/reprocess")
async def reprocess_queue(
    queue_name: str, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    result = await plane.remediation.reprocess(queue_name)
    return result.to_dict()


@router.post("/{queue_name}/empty")
async def empty_queue(
    queue_name: str,
    request: EmptyQueueRequest | None = Body(default=None),
    plane: ControlPlane = Depends(get_control_plane_dep),
) -> dict[str, Any]:
    """Remove failed jobs; completed jobs are kept unless asked otherwise."""
    request = request or EmptyQueueRequest()
    result = await plane.remediation.empty(
        queue_name,
        keep_completed=request.keep_completed,
        include_pending=request.include_pending,
        include_active=request.include_active,
    )
    return result.to_dict()
