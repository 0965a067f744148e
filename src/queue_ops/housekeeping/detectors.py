"""Classification rules for housekeeping candidates.

Each detection type has one rule deciding whether a candidate returned by
the storage backend is eligible for cleanup. A rule returns the reason
recorded on the finding, or None to skip the candidate.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

from ..models import FileRef, FindingType
from .config import HousekeepingConfig

Rule = Callable[[FileRef, datetime, HousekeepingConfig, bool], str | None]


def _age_hours(since: datetime, now: datetime) -> float:
    return (now - since).total_seconds() / 3600


def pending_deletion(
    ref: FileRef, now: datetime, config: HousekeepingConfig, exists: bool
) -> str | None:
    """Flagged for deletion at least ``grace_period_hours`` ago."""
    if ref.status != "pending_deletion":
        return None
    flagged = ref.flagged_at or ref.created_at
    if flagged is None or flagged + timedelta(hours=config.grace_period_hours) > now:
        return None
    age = _age_hours(flagged, now)
    return f"Flagged for deletion {age:.1f}h ago (grace period {config.grace_period_hours}h)"


def deleted_status(
    ref: FileRef, now: datetime, config: HousekeepingConfig, exists: bool
) -> str | None:
    """Record says deleted but the physical file is still on storage."""
    if ref.status != "deleted" or not exists:
        return None
    return "Record marked deleted but file still on storage"


def failed_processing(
    ref: FileRef, now: datetime, config: HousekeepingConfig, exists: bool
) -> str | None:
    if ref.processing_status != "failed":
        return None
    return "Processing failed"


def abandoned_upload(
    ref: FileRef, now: datetime, config: HousekeepingConfig, exists: bool
) -> str | None:
    """Still uploading after ``abandoned_upload_hours``."""
    if ref.status != "uploading" or ref.created_at is None:
        return None
    if ref.created_at + timedelta(hours=config.abandoned_upload_hours) > now:
        return None
    age = _age_hours(ref.created_at, now)
    return f"Upload unfinished after {age:.1f}h"


def physical_orphan(
    ref: FileRef, now: datetime, config: HousekeepingConfig, exists: bool
) -> str | None:
    """File on storage with no catalog record, older than the grace period."""
    if ref.record_id is not None or not exists:
        return None
    if ref.created_at is None or ref.created_at + timedelta(hours=config.grace_period_hours) > now:
        return None
    return "File has no catalog record"


RULES: dict[FindingType, Rule] = {
    FindingType.PENDING_DELETION_FILES: pending_deletion,
    FindingType.DELETED_STATUS_FILES: deleted_status,
    FindingType.FAILED_PROCESSING_FILES: failed_processing,
    FindingType.ABANDONED_UPLOADS: abandoned_upload,
    FindingType.PHYSICAL_ORPHANS: physical_orphan,
}


def classify(
    finding_type: FindingType,
    ref: FileRef,
    now: datetime,
    config: HousekeepingConfig,
    exists: bool,
) -> str | None:
    """Apply the rule for ``finding_type`` to one candidate."""
    return RULES[finding_type](ref, now, config, exists)
