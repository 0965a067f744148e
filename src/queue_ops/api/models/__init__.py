"""API models package for the control plane."""

from .requests import (
    EmptyQueueRequest,
    HousekeepingConfigModel,
    HousekeepingRequest,
    PurgeJobsRequest,
    WorkerConfigUpdateRequest,
    WorkerControlRequest,
    WorkerEnabledRequest,
)
from .responses import CircuitListResponse, ErrorResponse, LivenessResponse, ReadinessResponse

__all__ = [
    "CircuitListResponse",
    "EmptyQueueRequest",
    "ErrorResponse",
    "HousekeepingConfigModel",
    "HousekeepingRequest",
    "LivenessResponse",
    "PurgeJobsRequest",
    "ReadinessResponse",
    "WorkerConfigUpdateRequest",
    "WorkerControlRequest",
    "WorkerEnabledRequest",
]
