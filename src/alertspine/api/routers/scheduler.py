"""
Scheduler router.

GET /scheduler/status
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from alertspine.api.deps import SchedulerDep
from alertspine.api.schemas import JobStatusSchema, SchedulerDisabledResponse, SchedulerStatusResponse

router = APIRouter(prefix="/scheduler")


@router.get(
    "/status",
    response_model=SchedulerStatusResponse,
    responses={503: {"model": SchedulerDisabledResponse}},
)
def scheduler_status(scheduler: SchedulerDep):
    """Status of every scheduled job.

    Returns 503 when scheduled alerts are disabled or the scheduler is not
    running.

    Example:
        GET /api/scheduler/status

        Response:
        {
            "status": "enabled",
            "jobs": [
                {
                    "name": "daily-critical",
                    "next_run": "2026-02-14T09:00:00+07:00",
                    "prev_run": null,
                    "active": true,
                    ...
                }
            ]
        }
    """
    if scheduler is None or not scheduler.is_running:
        return JSONResponse(
            status_code=503,
            content=SchedulerDisabledResponse().model_dump(),
        )
    jobs = [JobStatusSchema.from_entry(entry) for entry in scheduler.status()]
    return SchedulerStatusResponse(jobs=jobs)
