"""API request models with Pydantic validation."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from ...models import FindingType, JobState


class WorkerControlRequest(BaseModel):
    """Request body for POST /workers/control."""

    model_config = {"extra": "forbid"}

    action: Literal["start", "stop", "restart"]


class WorkerEnabledRequest(BaseModel):
    """Request body for PUT /workers/config/{worker_id}/enabled."""

    model_config = {"extra": "forbid"}

    enabled: bool


class WorkerConfigUpdateRequest(BaseModel):
    """Partial update of one worker type's configuration."""

    model_config = {"extra": "forbid"}

    enabled: bool | None = None
    max_retries: int | None = Field(default=None, ge=0)
    concurrency: int | None = Field(default=None, ge=1)


class EmptyQueueRequest(BaseModel):
    """Request body for POST /queues/{name}/empty."""

    model_config = {"extra": "forbid"}

    keep_completed: bool = True
    include_pending: bool = False
    include_active: bool = False


class PurgeJobsRequest(BaseModel):
    """Request body for POST /queues/cleanup."""

    model_config = {"extra": "forbid"}

    older_than_days: int = Field(default=30, ge=1)
    states: list[JobState] = Field(default_factory=lambda: [JobState.COMPLETED, JobState.FAILED])
    dry_run: bool = False

    @field_validator("states")
    @classmethod
    def validate_states(cls, v: list[JobState]) -> list[JobState]:
        """Validate at least one state is given."""
        if not v:
            raise ValueError("states must not be empty")
        return v


class HousekeepingConfigModel(BaseModel):
    """Overrides applied on top of the configured housekeeping defaults."""

    model_config = {"extra": "forbid"}

    dry_run: bool | None = None
    max_files: int | None = Field(default=None, ge=1, le=1000)
    grace_period_hours: int | None = Field(default=None, ge=0)
    detection_types: list[FindingType] | None = None
    log_details: bool | None = None
    abandoned_upload_hours: int | None = Field(default=None, ge=0)
    two_phase_deletion: bool | None = None
    directory_cleanup: bool | None = None


class HousekeepingRequest(BaseModel):
    """Request body for POST /housekeeping."""

    model_config = {"extra": "forbid"}

    operation: Literal["analyze", "run"]
    config: HousekeepingConfigModel | None = None
