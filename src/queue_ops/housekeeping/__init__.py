"""Housekeeping: orphaned media detection and cleanup."""

from .config import DEFAULT_DETECTION_TYPES, HousekeepingConfig
from .engine import HousekeepingEngine

__all__ = [
    "DEFAULT_DETECTION_TYPES",
    "HousekeepingConfig",
    "HousekeepingEngine",
]
