"""Scheduled alert polling.

┌──────────────────────────────────────────────────────────────────────────────┐
│  SCHEDULING                                                                   │
│                                                                               │
│   ┌──────────────┐   fire(t)   ┌──────────────────────────────┐              │
│   │ CronBackend  │ ──────────► │   AlertScheduler             │              │
│   │  (timing)    │             │                              │              │
│   └──────────────┘             │  fetch ─► filter ─► build    │              │
│                                │          ─► dispatch         │              │
│   Backends:                    │                              │              │
│   • APScheduler (default)      │  JobRegistry (status, RW     │              │
│   • Thread (croniter)          │  lock, in-flight tracking)   │              │
│                                └──────────────────────────────┘              │
└──────────────────────────────────────────────────────────────────────────────┘

Quick start::

    from alertspine.scheduling import create_scheduler

    scheduler = create_scheduler(config, settings)
    scheduler.start()
    ...
    scheduler.stop()
"""

from __future__ import annotations

from datetime import tzinfo

from alertspine.core.config import AlertSpineSettings, CronBackendKind, ScheduledAlertConfig
from alertspine.pipeline.dispatch import ConsoleSink, DispatchSink, HttpIncidentSink

from .apscheduler_backend import APSchedulerCronBackend
from .cron import (
    is_simple_schedule,
    parse_simple_schedule,
    resolve_schedule,
    resolve_timezone,
    validate_cron_expression,
)
from .protocol import CronBackend, FireAction, JobHandle, TaskDescriptor
from .registry import FiringOutcome, JobRegistry, JobRuntimeEntry, ReadWriteLock
from .service import AlertScheduler, SchedulerHealth, SchedulerStats
from .thread_backend import ThreadCronBackend

__all__ = [
    # Service
    "AlertScheduler",
    "SchedulerHealth",
    "SchedulerStats",
    "create_backend",
    "create_scheduler",
    # Registry
    "FiringOutcome",
    "JobRegistry",
    "JobRuntimeEntry",
    "ReadWriteLock",
    # Backends
    "CronBackend",
    "FireAction",
    "JobHandle",
    "TaskDescriptor",
    "APSchedulerCronBackend",
    "ThreadCronBackend",
    # Schedules
    "is_simple_schedule",
    "parse_simple_schedule",
    "resolve_schedule",
    "resolve_timezone",
    "validate_cron_expression",
]


def create_backend(
    kind: CronBackendKind | str,
    timezone: tzinfo | None = None,
    *,
    max_workers: int = 20,
    misfire_grace_seconds: int = 60,
) -> CronBackend:
    """Build the cron engine named by *kind*.

    Raises:
        ValueError: unknown backend kind
    """
    kind = CronBackendKind(kind)
    if kind is CronBackendKind.THREAD:
        return ThreadCronBackend()
    return APSchedulerCronBackend(
        timezone,
        max_workers=max_workers,
        misfire_grace_seconds=misfire_grace_seconds,
    )


def create_scheduler(
    config: ScheduledAlertConfig,
    settings: AlertSpineSettings,
    sink: DispatchSink | None = None,
) -> AlertScheduler:
    """Factory function to create a fully wired scheduler.

    Args:
        config: Scheduled-alert configuration
        settings: Process settings (backend, timeouts, delivery endpoint)
        sink: Delivery sink; defaults to :class:`HttpIncidentSink` when
            ``settings.dispatch_url`` is set, else :class:`ConsoleSink`

    Example:
        >>> scheduler = create_scheduler(config, get_settings())
        >>> scheduler.start()
    """
    if sink is None:
        if settings.dispatch_url:
            sink = HttpIncidentSink(settings.dispatch_url, timeout=settings.dispatch_timeout_seconds)
        else:
            sink = ConsoleSink()

    backend = create_backend(
        settings.scheduler_backend,
        resolve_timezone(config.timezone),
        max_workers=settings.max_workers,
        misfire_grace_seconds=settings.misfire_grace_seconds,
    )
    return AlertScheduler(
        config,
        sink,
        backend=backend,
        fetch_timeout=settings.fetch_timeout_seconds,
    )
