"""Worker endpoints: lifecycle control and per-type configuration.

Endpoints:
- GET /workers/status - Lifecycle state and heartbeat summary
- POST /workers/control - Start, stop or restart the pool
- GET /workers/config - All worker type configurations
- GET /workers/config/{worker_id} - One configuration
- PATCH /workers/config/{worker_id} - Partial update
- PUT /workers/config/{worker_id}/enabled - Enable or disable a type
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ...control_plane import ControlPlane
from ..dependencies import get_control_plane_dep
from ..models.requests import WorkerConfigUpdateRequest, WorkerControlRequest, WorkerEnabledRequest

router = APIRouter()


@router.get("/status")
async def get_worker_status(plane: ControlPlane = Depends(get_control_plane_dep)) -> dict[str, Any]:
    status = await plane.lifecycle.status()
    return status.to_dict()


@router.post("/control")
async def control_workers(
    request: WorkerControlRequest, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    """Run a lifecycle command.

    The response reports ``confirmed=False`` when the heartbeat did not
    confirm the new state within the confirmation timeout.
    """
    if request.action == "start":
        result = await plane.lifecycle.start()
    elif request.action == "stop":
        result = await plane.lifecycle.stop()
    else:
        result = await plane.lifecycle.restart()
    return result.to_dict()


@router.get("/config")
async def get_worker_configs(
    plane: ControlPlane = Depends(get_control_plane_dep),
) -> dict[str, Any]:
    configs = await plane.config_registry.get_all()
    return {"workers": {worker_id: cfg.to_dict() for worker_id, cfg in configs.items()}}


@router.get("/config/{worker_id}")
async def get_worker_config(
    worker_id: str, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    config = await plane.config_registry.get(worker_id)
    return {"worker_id": worker_id, **config.to_dict()}


@router.patch("/config/{worker_id}")
async def update_worker_config(
    worker_id: str,
    request: WorkerConfigUpdateRequest,
    plane: ControlPlane = Depends(get_control_plane_dep),
) -> dict[str, Any]:
    changes = request.model_dump(exclude_none=True)
    if not changes:
        raise ValueError("No fields to update")
    config = await plane.config_registry.update(worker_id, **changes)
    return {"worker_id": worker_id, **config.to_dict()}


@router.put("/config/{worker_id}/enabled")
async def set_worker_enabled(
    worker_id: str,
    request: WorkerEnabledRequest,
    plane: ControlPlane = Depends(get_control_plane_dep),
) -> dict[str, Any]:
    config = await plane.config_registry.set_enabled(worker_id, request.enabled)
    return {"worker_id": worker_id, **config.to_dict()}
