"""Cron backend protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  CRON BACKEND PROTOCOL                                                        │
│                                                                               │
│  Backends control WHEN a job fires; AlertScheduler controls WHAT happens     │
│  in a firing. Each job is registered as an explicit task descriptor plus     │
│  an action, and the backend hands back an opaque handle:                     │
│                                                                               │
│   ┌──────────────────┐  register(task, action)  ┌─────────────────────────┐ │
│   │  AlertScheduler  │ ───────────────────────► │  CronBackend            │ │
│   │                  │ ◄─────────────────────── │  (APScheduler / thread) │ │
│   │                  │        JobHandle         │                         │ │
│   │                  │                          │  on each due tick:      │ │
│   │   _fire(job, t)  │ ◄─────────────────────── │    action(fired_at)     │ │
│   └──────────────────┘                          └─────────────────────────┘ │
│                                                                               │
│  Guarantees every backend provides:                                          │
│  - different jobs fire concurrently                                          │
│  - ticks of one job never overlap                                            │
│  - an exception from an action is logged, never unschedules the job         │
│  - stop() returns after in-flight actions finish                             │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Protocol, runtime_checkable

FireAction = Callable[[datetime], Any]


@dataclass(frozen=True)
class TaskDescriptor:
    """What to schedule: a unique name, a 5-field cron expression and a zone.

    ``timezone`` of ``None`` means the host's local time.
    """

    name: str
    cron_expression: str
    timezone: tzinfo | None = None


@dataclass(frozen=True)
class JobHandle:
    """Opaque reference to a registered task."""

    job_id: str
    task: TaskDescriptor


@runtime_checkable
class CronBackend(Protocol):
    """Protocol for pluggable cron engines.

    Implementations:
        - APSchedulerCronBackend: APScheduler 3.x BackgroundScheduler (default)
        - ThreadCronBackend: croniter plus one thread per job
    """

    name: str

    def register(self, task: TaskDescriptor, action: FireAction) -> JobHandle:
        """Schedule *action* on *task*'s cron expression.

        Registering a name that already exists replaces the earlier task.

        Raises:
            InvalidScheduleError: the cron expression does not parse
        """
        ...

    def remove(self, handle: JobHandle) -> None:
        """Unschedule a task. Unknown handles are ignored."""
        ...

    def next_run(self, handle: JobHandle) -> datetime | None:
        """Next planned fire time, or None when nothing is planned."""
        ...

    def prev_run(self, handle: JobHandle) -> datetime | None:
        """Most recent fire time, or None before the first firing."""
        ...

    def start(self) -> None:
        """Begin firing registered tasks."""
        ...

    def stop(self) -> None:
        """Stop firing and wait for in-flight actions to finish."""
        ...

    def health(self) -> dict[str, Any]:
        """Return backend health status.

        Returns:
            dict with at least:
                - healthy: bool, whether the backend is running
                - backend: str, backend name
                - jobs: int, number of registered tasks
        """
        ...
