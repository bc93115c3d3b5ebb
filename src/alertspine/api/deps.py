"""
FastAPI dependency injection.

The scheduler is created by the caller and stashed on ``app.state`` by
:func:`alertspine.api.create_app`; routers read it back through
:data:`SchedulerDep`. It is ``None`` when scheduled alerts are disabled.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from alertspine.scheduling.service import AlertScheduler


def get_scheduler(request: Request) -> AlertScheduler | None:
    return getattr(request.app.state, "scheduler", None)


SchedulerDep = Annotated[AlertScheduler | None, Depends(get_scheduler)]
