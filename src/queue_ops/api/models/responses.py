"""API response models.

Most routes return the ``to_dict()`` form of the domain dataclasses; the
models here cover the payloads produced by the API layer itself.
"""

from typing import Any, Literal

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error response model.

    ``circuit`` and ``retry_after`` are set for open circuits, ``action``
    for rejected worker commands.
    """

    detail: str
    circuit: str | None = None
    retry_after: float | None = None
    action: str | None = None


class LivenessResponse(BaseModel):
    status: Literal["alive"] = "alive"


class ReadinessResponse(BaseModel):
    """Readiness status with an optional failure detail."""

    status: Literal["ok", "unavailable"]
    detail: str | None = None


class CircuitListResponse(BaseModel):
    """All backend circuit breakers with aggregate counts."""

    circuits: list[dict[str, Any]]
    stats: dict[str, int]
