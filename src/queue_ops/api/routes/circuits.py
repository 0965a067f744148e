"""Circuit breaker endpoints.

Endpoints:
- GET /circuits - List backend circuits with state counts
- POST /circuits/{name}/reset - Manually close a circuit
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from ...control_plane import ControlPlane
from ..dependencies import get_control_plane_dep
from ..models.responses import CircuitListResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=CircuitListResponse)
async def get_circuits(plane: ControlPlane = Depends(get_control_plane_dep)) -> CircuitListResponse:
    return CircuitListResponse(
        circuits=[breaker.to_dict() for breaker in plane.breakers.all()],
        stats=plane.breakers.get_stats(),
    )


@router.post("/{name}/reset")
async def reset_circuit(
    name: str, plane: ControlPlane = Depends(get_control_plane_dep)
) -> dict[str, Any]:
    """Reset a circuit to CLOSED.

    Raises:
        LookupError: If no circuit has this name (404).
    """
    breaker = plane.breakers.find(name)
    if breaker is None:
        raise LookupError(f"Circuit {name} not found")
    await breaker.reset()
    logger.info("Circuit %s reset via API", name)
    return breaker.to_dict()
