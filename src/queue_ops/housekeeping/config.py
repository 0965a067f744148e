"""Housekeeping run configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..models import FindingType

DEFAULT_DETECTION_TYPES: frozenset[FindingType] = frozenset(
    {
        FindingType.PENDING_DELETION_FILES,
        FindingType.DELETED_STATUS_FILES,
        FindingType.FAILED_PROCESSING_FILES,
        FindingType.ABANDONED_UPLOADS,
    }
)


@dataclass(frozen=True)
class HousekeepingConfig:
    """Configuration for one housekeeping invocation.

    Attributes:
        dry_run: Classify and report only, never delete.
        max_files: Candidates scanned per detection type.
        grace_period_hours: Minimum age of a deletion flag (and of an
            orphaned file) before it is eligible.
        detection_types: Detection passes to run.
        log_details: Log every finding at DEBUG level.
        abandoned_upload_hours: Time after which an unfinished upload is
            considered abandoned.
        two_phase_deletion: Mark catalog records deleted before removing
            the physical file, and purge them afterwards.
        directory_cleanup: Remove parent directories left empty by a delete.
    """

    dry_run: bool = True
    max_files: int = 50
    grace_period_hours: int = 24
    detection_types: frozenset[FindingType] = field(default=DEFAULT_DETECTION_TYPES)
    log_details: bool = True
    abandoned_upload_hours: int = 2
    two_phase_deletion: bool = True
    directory_cleanup: bool = True

    def __post_init__(self) -> None:
        if self.max_files < 1:
            raise ValueError("max_files must be at least 1")
        if self.grace_period_hours < 0:
            raise ValueError("grace_period_hours must not be negative")
        if self.abandoned_upload_hours < 0:
            raise ValueError("abandoned_upload_hours must not be negative")
        # Accept any iterable of types or their string values
        object.__setattr__(
            self,
            "detection_types",
            frozenset(FindingType(t) for t in self.detection_types),
        )

    @property
    def ordered_types(self) -> list[FindingType]:
        """Enabled detection types in processing order."""
        return [t for t in FindingType if t in self.detection_types]

    def to_dict(self) -> dict[str, Any]:
        return {
            "dry_run": self.dry_run,
            "max_files": self.max_files,
            "grace_period_hours": self.grace_period_hours,
            "detection_types": [t.value for t in self.ordered_types],
            "log_details": self.log_details,
            "abandoned_upload_hours": self.abandoned_upload_hours,
            "two_phase_deletion": self.two_phase_deletion,
            "directory_cleanup": self.directory_cleanup,
        }
