"""Health check router: dependency health, liveness and readiness."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Response

from ...control_plane import ControlPlane
from ...models import HealthState, utcnow
from ...stats import overall_health
from ..dependencies import get_control_plane_dep
from ..models.responses import LivenessResponse, ReadinessResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def get_health(
    response: Response, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    """Return dependency health and circuit breaker counts.

    Status code is 200 for healthy/degraded, 503 for unhealthy. Any
    failure while checking is reported as unhealthy, never as a 500.
    """
    try:
        checks = await plane.stats.run_health_checks()
        status = overall_health(checks)
        circuits = plane.breakers.get_stats()
        if circuits["open"] and status == HealthState.HEALTHY:
            status = HealthState.DEGRADED
        response.status_code = 503 if status == HealthState.UNHEALTHY else 200
        return {
            "status": status.value,
            "checks": [check.to_dict() for check in checks],
            "circuits": circuits,
            "timestamp": utcnow().isoformat(),
        }
    except Exception as e:
        logger.warning("Health check failed: %s", e)
        response.status_code = 503
        return {
            "status": HealthState.UNHEALTHY.value,
            "checks": [],
            "circuits": {},
            "timestamp": utcnow().isoformat(),
            "error": f"Health check failed: {e}",
        }


@router.get("/live", response_model=LivenessResponse)
def get_health_live() -> LivenessResponse:
    """Return liveness status."""
    return LivenessResponse()


@router.get("/ready", response_model=ReadinessResponse, response_model_exclude_none=True)
async def get_health_ready(
    response: Response, plane: ControlPlane = Depends(get_control_plane_dep)
) -> ReadinessResponse:
    """Return readiness status by checking database connectivity."""
    try:
        await plane.stats.check_database()
    except Exception as e:
        response.status_code = 503
        return ReadinessResponse(status="unavailable", detail=str(e))
    return ReadinessResponse(status="ok")
