"""
Health router.

GET /healthz
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from alertspine import __version__
from alertspine.api.deps import SchedulerDep
from alertspine.api.schemas import HealthResponse

_START_TIME = time.monotonic()

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse)
def healthz(scheduler: SchedulerDep) -> JSONResponse:
    """Liveness plus scheduler health. 503 only when an enabled scheduler is down."""
    details = None
    if scheduler is None or not scheduler.config.enable:
        status = "disabled"
    else:
        health = scheduler.health()
        details = health.to_dict()
        status = "healthy" if health.healthy else "unhealthy"

    body = HealthResponse(
        status=status,
        service="alert-spine",
        version=__version__,
        uptime_s=round(time.monotonic() - _START_TIME, 1),
        timestamp=datetime.now(UTC).isoformat(),
        scheduler=details,
    )
    return JSONResponse(
        content=body.model_dump(),
        status_code=503 if status == "unhealthy" else 200,
    )
