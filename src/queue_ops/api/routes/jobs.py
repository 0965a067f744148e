"""Job endpoints.

Endpoints:
- GET /jobs - Paginated listing with queue, state and type filters
- GET /jobs/{job_id} - Job detail
- POST /jobs/{job_id}/retry - Retry a failed job
- POST /jobs/{job_id}/cancel - Cancel an unfinished job
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from ...control_plane import ControlPlane
from ...models import JobState
from ...remediation import DEFAULT_PAGE_SIZE
from ..dependencies import get_control_plane_dep

router = APIRouter()


@router.get("")
async def list_jobs(
    queue: str | None = None,
    state: JobState | None = None,
    job_type: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = DEFAULT_PAGE_SIZE,
    plane: ControlPlane = Depends(get_control_plane_dep),
) -> dict[str, Any]:
    """List jobs newest first.

    Args:
        queue: Optional queue filter.
        state: Optional state filter.
        job_type: Optional job type filter.
        page: 1-based page number.
        limit: Page size, clamped to 1..50.
        plane: Control plane dependency (injected).
    """
    result = await plane.remediation.list_jobs(
        queue_name=queue, state=state, page=page, limit=limit, job_type=job_type
    )
    return result.to_dict()


@router.get("/{job_id}")
async def get_job(
    job_id: str, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    job = await plane.remediation.get_job_detail(job_id)
    return job.to_dict()


@router.post("/{job_id}/retry")
async def retry_job(
    job_id: str, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    job = await plane.remediation.retry_job(job_id)
    return job.to_dict()


@router.post("/{job_id}/cancel")
async def cancel_job(
    job_id: str, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    job = await plane.remediation.cancel_job(job_id)
    return job.to_dict()
