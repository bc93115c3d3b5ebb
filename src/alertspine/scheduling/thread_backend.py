"""Thread-per-job cron backend built on croniter.

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND ARCHITECTURE                                                  │
│                                                                               │
│   register(task, action)  ──► _CronJob(next_run = croniter.get_next())       │
│                                                                               │
│   start()                                                                     │
│      │   one daemon thread per job                                           │
│      ▼                                                                        │
│   ┌─────────────────────────────────────────────────────────┐                │
│   │   while not job.stop.wait(seconds until next_run):      │                │
│   │       prev_run = next_run                               │                │
│   │       next_run = croniter(expr, prev_run).get_next()    │                │
│   │       action(prev_run)          ◄─── serialized per job │                │
│   │       skip ticks missed while the action ran            │                │
│   └─────────────────────────────────────────────────────────┘                │
│                                                                               │
│   stop()  ──► set every job's stop event, join every thread (no timeout)     │
└──────────────────────────────────────────────────────────────────────────────┘

Useful where APScheduler is unwanted, and in tests, where its fire times
are easy to reason about.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any

from croniter import croniter

from .cron import validate_cron_expression
from .protocol import FireAction, JobHandle, TaskDescriptor

logger = logging.getLogger(__name__)


def _now(tz: tzinfo | None) -> datetime:
    return datetime.now(tz) if tz is not None else datetime.now().astimezone()


def _next_after(expression: str, after: datetime) -> datetime:
    return croniter(expression, after).get_next(datetime)


@dataclass
class _CronJob:
    handle: JobHandle
    action: FireAction
    next_run: datetime
    prev_run: datetime | None = None
    stop: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None


class ThreadCronBackend:
    """croniter-based backend with one daemon thread per registered job.

    Example:
        >>> backend = ThreadCronBackend()
        >>> handle = backend.register(TaskDescriptor("nightly", "0 9 * * *"), fire)
        >>> backend.start()
        >>> backend.next_run(handle)
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self) -> None:
        self._jobs: dict[str, _CronJob] = {}
        self._lock = threading.Lock()
        self._started = False
        self._stopped = False

    def register(self, task: TaskDescriptor, action: FireAction) -> JobHandle:
        validate_cron_expression(task.cron_expression)

        handle = JobHandle(job_id=task.name, task=task)
        job = _CronJob(
            handle=handle,
            action=action,
            next_run=_next_after(task.cron_expression, _now(task.timezone)),
        )
        with self._lock:
            previous = self._jobs.get(task.name)
            self._jobs[task.name] = job
            if self._started and not self._stopped:
                self._spawn(job)
        if previous is not None:
            self._retire(previous)
        return handle

    def remove(self, handle: JobHandle) -> None:
        with self._lock:
            job = self._jobs.get(handle.job_id)
            if job is None or job.handle != handle:
                return
            del self._jobs[handle.job_id]
        self._retire(job)

    def next_run(self, handle: JobHandle) -> datetime | None:
        with self._lock:
            job = self._jobs.get(handle.job_id)
            return job.next_run if job is not None else None

    def prev_run(self, handle: JobHandle) -> datetime | None:
        with self._lock:
            job = self._jobs.get(handle.job_id)
            return job.prev_run if job is not None else None

    def start(self) -> None:
        with self._lock:
            if self._started:
                logger.warning("ThreadCronBackend already started")
                return
            self._started = True
            for job in self._jobs.values():
                self._spawn(job)
        logger.info(f"ThreadCronBackend started with {len(self._jobs)} job(s)")

    def stop(self) -> None:
        """Stop every job thread and wait for running actions to finish."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            jobs = list(self._jobs.values())
        for job in jobs:
            job.stop.set()
        for job in jobs:
            if job.thread is not None:
                job.thread.join()
        logger.info("ThreadCronBackend shutdown complete")

    def health(self) -> dict[str, Any]:
        with self._lock:
            alive = sum(1 for job in self._jobs.values() if job.thread and job.thread.is_alive())
            return {
                "healthy": self._started and not self._stopped,
                "backend": self.name,
                "jobs": len(self._jobs),
                "threads_alive": alive,
            }

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    # === Internals ===

    def _spawn(self, job: _CronJob) -> None:
        job.thread = threading.Thread(
            target=self._loop,
            args=(job,),
            daemon=True,
            name=f"alertspine-cron-{job.handle.job_id}",
        )
        job.thread.start()

    def _retire(self, job: _CronJob) -> None:
        job.stop.set()
        if job.thread is not None and job.thread is not threading.current_thread():
            job.thread.join()

    def _loop(self, job: _CronJob) -> None:
        task = job.handle.task
        while True:
            with self._lock:
                fire_at = job.next_run
            delay = (fire_at - _now(task.timezone)).total_seconds()
            if job.stop.wait(max(delay, 0.0)):
                return

            with self._lock:
                job.prev_run = fire_at
                job.next_run = _next_after(task.cron_expression, fire_at)

            try:
                job.action(fire_at)
            except Exception as e:
                logger.exception(f"Job '{task.name}' action failed: {e}")

            now = _now(task.timezone)
            with self._lock:
                if job.next_run <= now:
                    skipped_from = job.next_run
                    job.next_run = _next_after(task.cron_expression, now)
                    logger.warning(
                        f"Job '{task.name}' overran its schedule; skipping ticks "
                        f"from {skipped_from.isoformat()} to {job.next_run.isoformat()}"
                    )
