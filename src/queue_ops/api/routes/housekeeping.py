"""Housekeeping endpoints.

Endpoints:
- GET /housekeeping/config - Configured defaults
- GET /housekeeping/analyze - Dry run with the configured defaults
- POST /housekeeping - Analyze or run with per-request overrides
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from fastapi import APIRouter, Depends

from ...control_plane import ControlPlane
from ...housekeeping import HousekeepingConfig
from ..dependencies import get_control_plane_dep
from ..models.requests import HousekeepingConfigModel, HousekeepingRequest

router = APIRouter()


def _merge_config(
    defaults: HousekeepingConfig, overrides: HousekeepingConfigModel | None
) -> HousekeepingConfig:
    if overrides is None:
        return defaults
    return replace(defaults, **overrides.model_dump(exclude_none=True))


@router.get("/config")
async def get_housekeeping_config(
    plane: ControlPlane = Depends(get_control_plane_dep),
) -> dict[str, Any]:
    return plane.housekeeping.defaults.to_dict()


@router.get("/analyze")
async def analyze(plane: ControlPlane = Depends(get_control_plane_dep)) -> dict[str, Any]:
    result = await plane.housekeeping.analyze()
    return result.to_dict()


@router.post("")
async def run_housekeeping(
    request: HousekeepingRequest, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    """Analyze or run housekeeping.

    ``run`` deletes files only when the effective config has
    ``dry_run`` false; the configured default is a dry run.
    """
    config = _merge_config(plane.housekeeping.defaults, request.config)
    if request.operation == "analyze":
        result = await plane.housekeeping.analyze(config)
    else:
        result = await plane.housekeeping.run(config)
    return result.to_dict()
