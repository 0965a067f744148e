"""Worker pool control: lifecycle state machine and per-type configuration."""

from .config_registry import WorkerConfigRegistry
from .lifecycle import (
    LifecycleResult,
    LifecycleStatus,
    WorkerLifecycleController,
    WorkerState,
    WorkerStateChange,
)

__all__ = [
    "LifecycleResult",
    "LifecycleStatus",
    "WorkerConfigRegistry",
    "WorkerLifecycleController",
    "WorkerState",
    "WorkerStateChange",
]
