"""APScheduler-based cron backend.

Wraps APScheduler 3.x ``BackgroundScheduler``. Every registered task
becomes one APScheduler job with a ``CronTrigger`` built from its crontab
expression and:

    - ``max_instances=1``: ticks of the same job never overlap
    - ``coalesce=True``: a backlog of missed ticks fires once
    - ``misfire_grace_time``: how late a tick may still fire

Jobs run on a thread-pool executor, so a slow backend for one job never
delays another. ``stop()`` calls ``shutdown(wait=True)``, which returns
only after running jobs have finished.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, tzinfo
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from alertspine.core.errors import InvalidScheduleError

from .cron import weekday_field_to_names
from .protocol import FireAction, JobHandle, TaskDescriptor

logger = logging.getLogger(__name__)


def _crontab_trigger(expression: str, timezone: tzinfo | None) -> tuple[BaseTrigger, tzinfo]:
    """``CronTrigger.from_crontab`` with crontab day semantics.

    APScheduler counts weekdays from Monday, so the day-of-week field is
    rewritten to day names first and ``1-5`` still means Monday to Friday.
    When both day-of-month and day-of-week are restricted, crontab fires on
    either match; APScheduler would require both, so the two halves become
    separate triggers under an ``OrTrigger``.

    Returns the trigger and its resolved time zone.
    """
    values = expression.split()
    if len(values) != 5:
        raise ValueError(f"Wrong number of fields; got {len(values)}, expected 5")
    minute, hour, day, month, day_of_week = values
    day_of_week = weekday_field_to_names(day_of_week)

    def _cron(day: str, day_of_week: str) -> CronTrigger:
        return CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
            timezone=timezone,
        )

    if day != "*" and day_of_week != "*":
        by_day, by_weekday = _cron(day, "*"), _cron("*", day_of_week)
        return OrTrigger([by_day, by_weekday]), by_day.timezone
    trigger = _cron(day, day_of_week)
    return trigger, trigger.timezone


class APSchedulerCronBackend:
    """APScheduler-based cron backend.

    Example::

        >>> backend = APSchedulerCronBackend(timezone=ZoneInfo("UTC"))
        >>> handle = backend.register(TaskDescriptor("nightly", "0 9 * * *"), fire)
        >>> backend.start()
        >>> # … later …
        >>> backend.stop()

    Args:
        timezone: Scheduler zone; ``None`` uses the host's local zone
        max_workers: Thread-pool size shared by all jobs
        misfire_grace_seconds: How late a tick may fire before it is dropped
    """

    name: str = "apscheduler"

    def __init__(
        self,
        timezone: tzinfo | None = None,
        *,
        max_workers: int = 20,
        misfire_grace_seconds: int = 60,
    ) -> None:
        self._scheduler = BackgroundScheduler(
            timezone=timezone,
            executors={"default": ThreadPoolExecutor(max_workers)},
        )
        self._timezone = timezone
        self._misfire_grace_seconds = misfire_grace_seconds
        self._triggers: dict[str, tuple[BaseTrigger, tzinfo]] = {}
        self._prev: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self._stopped = False

    # ------------------------------------------------------------------
    # CronBackend protocol
    # ------------------------------------------------------------------

    def register(self, task: TaskDescriptor, action: FireAction) -> JobHandle:
        try:
            trigger, zone = _crontab_trigger(task.cron_expression, task.timezone or self._timezone)
        except ValueError as e:
            raise InvalidScheduleError(
                f"invalid cron expression '{task.cron_expression}': {e}",
                schedule=task.cron_expression,
                cause=e,
            ) from e

        job_id = task.name

        def _fire() -> None:
            fired_at = datetime.now(zone)
            with self._lock:
                self._prev[job_id] = fired_at
            action(fired_at)

        with self._lock:
            self._triggers[job_id] = (trigger, zone)
            self._prev.pop(job_id, None)
        self._scheduler.add_job(
            _fire,
            trigger,
            id=job_id,
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self._misfire_grace_seconds,
        )
        return JobHandle(job_id=job_id, task=task)

    def remove(self, handle: JobHandle) -> None:
        with self._lock:
            self._triggers.pop(handle.job_id, None)
            self._prev.pop(handle.job_id, None)
        if self._scheduler.get_job(handle.job_id) is not None:
            self._scheduler.remove_job(handle.job_id)

    def next_run(self, handle: JobHandle) -> datetime | None:
        """Next fire time computed from the trigger and the last firing.

        Computed rather than read from the APScheduler job so it is correct
        before ``start()`` and inside a running firing.
        """
        with self._lock:
            entry = self._triggers.get(handle.job_id)
            prev = self._prev.get(handle.job_id)
        if entry is None or self._stopped:
            return None
        trigger, zone = entry
        return trigger.get_next_fire_time(prev, datetime.now(zone))

    def prev_run(self, handle: JobHandle) -> datetime | None:
        with self._lock:
            return self._prev.get(handle.job_id)

    def start(self) -> None:
        if self._scheduler.running:
            logger.warning("APSchedulerCronBackend already started")
            return
        self._scheduler.start()
        logger.info(f"APSchedulerCronBackend started with {len(self._triggers)} job(s)")

    def stop(self) -> None:
        """Shut down the scheduler, waiting for running jobs to finish."""
        if self._stopped:
            return
        self._stopped = True
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("APSchedulerCronBackend stopped")

    def health(self) -> dict[str, Any]:
        running = self._scheduler.running
        return {
            "healthy": running,
            "backend": self.name,
            "jobs": len(self._triggers),
            "scheduled_jobs": len(self._scheduler.get_jobs()) if running else 0,
        }

    @property
    def is_running(self) -> bool:
        return self._scheduler.running
