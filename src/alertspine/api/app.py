"""
FastAPI application factory.

``create_app()`` wires routers, the error handler and lifespan events
around an already-built :class:`~alertspine.scheduling.AlertScheduler`.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from alertspine import __version__
from alertspine.core.logging import get_logger
from alertspine.scheduling.service import AlertScheduler

logger = get_logger("alertspine.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the scheduler with the server and drain it on shutdown."""
    scheduler: AlertScheduler | None = app.state.scheduler
    manage = app.state.manage_scheduler and scheduler is not None

    logger.info("api_starting", version=app.version)
    if manage:
        scheduler.start()
    try:
        yield
    finally:
        if manage:
            scheduler.stop()
        logger.info("api_shutting_down")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions."""
    logger.error("unhandled_api_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"},
    )


def create_app(
    scheduler: AlertScheduler | None = None,
    *,
    manage_scheduler: bool = False,
    api_prefix: str = "/api",
) -> FastAPI:
    """Build the status API.

    Parameters
    ----------
    scheduler : AlertScheduler | None
        Scheduler to report on; ``None`` when scheduled alerts are disabled.
    manage_scheduler : bool
        Start the scheduler on startup and stop it on shutdown.
    api_prefix : str
        Prefix for the scheduler routes (``/healthz`` stays at the root).
    """
    app = FastAPI(
        title="alert-spine",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.scheduler = scheduler
    app.state.manage_scheduler = manage_scheduler

    app.add_exception_handler(Exception, unhandled_exception_handler)

    from alertspine.api.routers import health
    from alertspine.api.routers import scheduler as scheduler_router

    app.include_router(health.router, tags=["health"])
    app.include_router(scheduler_router.router, prefix=api_prefix, tags=["scheduler"])

    return app
