"""Response models for the status API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from alertspine.scheduling.registry import JobRuntimeEntry


class JobStatusSchema(BaseModel):
    """Runtime status of one scheduled job."""

    name: str
    next_run: datetime | None = None
    prev_run: datetime | None = None
    active: bool = False
    firing: bool = False
    fire_count: int = 0
    failure_count: int = 0
    last_outcome: str | None = None
    last_error: str | None = None

    @classmethod
    def from_entry(cls, entry: JobRuntimeEntry) -> JobStatusSchema:
        return cls(
            name=entry.name,
            next_run=entry.next_run,
            prev_run=entry.prev_run,
            active=entry.active,
            firing=entry.firing,
            fire_count=entry.fire_count,
            failure_count=entry.failure_count,
            last_outcome=entry.last_outcome.value if entry.last_outcome else None,
            last_error=entry.last_error,
        )


class SchedulerStatusResponse(BaseModel):
    status: Literal["enabled"] = "enabled"
    jobs: list[JobStatusSchema] = Field(default_factory=list)


class SchedulerDisabledResponse(BaseModel):
    status: Literal["disabled"] = "disabled"
    message: str = "Scheduled alerts are not enabled"


class HealthResponse(BaseModel):
    """Process health, with scheduler details when one is configured."""

    status: Literal["healthy", "disabled", "unhealthy"]
    service: str
    version: str
    uptime_s: float
    timestamp: str
    scheduler: dict[str, Any] | None = None
