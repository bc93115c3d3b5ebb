"""Alert scheduler service - main orchestrator.

┌──────────────────────────────────────────────────────────────────────────────┐
│  ALERT SCHEDULER ARCHITECTURE                                                 │
│                                                                               │
│   start()                                                                     │
│     for each enabled job:                                                     │
│       resolve_schedule()  ──►  backend.register(task, _fire)  ──► registry   │
│     backend.start()                                                           │
│                                                                               │
│   _fire(job, fired_at)          (backend thread, one per due job)            │
│     registry.begin_firing()                                                   │
│     ├── client.fetch()             TransportError / FormatError ──► log, end │
│     ├── filter_alerts()                                                       │
│     ├── build_incident_payload()   None ──► log, end (no dispatch)           │
│     ├── overlay scheduled_job / scheduled_time                                │
│     └── sink.deliver("scheduled", payload, params)   DispatchError ──► log   │
│     registry.end_firing(outcome)                                              │
│                                                                               │
│   status()  ──► registry.snapshot()        (read lock only)                  │
│   stop()    ──► close registry, backend.stop(), wait for in-flight firings   │
└──────────────────────────────────────────────────────────────────────────────┘

A firing never raises into the cron engine. Whatever goes wrong is logged,
recorded on the job's runtime entry, and the job stays scheduled for its
next tick.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from functools import partial
from typing import Any

from alertspine.core.config.jobs import AlertmanagerSettings, JobDefinition, ScheduledAlertConfig
from alertspine.core.errors import (
    ConfigurationError,
    DispatchError,
    FormatError,
    TransportError,
    is_retryable,
)
from alertspine.core.logging import LogContext, get_logger
from alertspine.pipeline.dispatch import SCHEDULED_SOURCE, DispatchSink, build_dispatch_params
from alertspine.pipeline.matching import filter_alerts
from alertspine.pipeline.payload import build_incident_payload, format_rfc3339
from alertspine.sources.alertmanager import DEFAULT_TIMEOUT_SECONDS, AlertmanagerClient, AlertSource

from .cron import describe_timezone, resolve_schedule, resolve_timezone
from .protocol import CronBackend, JobHandle, TaskDescriptor
from .registry import FiringOutcome, JobRegistry, JobRuntimeEntry

logger = get_logger(__name__)

ClientFactory = Callable[[AlertmanagerSettings, float], AlertSource]


def default_client_factory(settings: AlertmanagerSettings, timeout: float) -> AlertSource:
    """Build a fresh Alertmanager client for one firing."""
    return AlertmanagerClient(
        settings.url,
        settings.username,
        settings.password,
        timeout=timeout,
    )


@dataclass
class SchedulerStats:
    """Counters across all jobs."""

    firings: int = 0
    dispatched: int = 0
    empty: int = 0
    failed: int = 0
    skipped: int = 0
    last_firing: datetime | None = None
    last_error: str | None = None


@dataclass
class SchedulerHealth:
    """Health status for the scheduler service."""

    healthy: bool
    enabled: bool
    backend: dict[str, Any]
    jobs: int = 0
    timezone: str = "local"
    stats: SchedulerStats = field(default_factory=SchedulerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "enabled": self.enabled,
            "backend": self.backend,
            "jobs": self.jobs,
            "timezone": self.timezone,
            "stats": {
                "firings": self.stats.firings,
                "dispatched": self.stats.dispatched,
                "empty": self.stats.empty,
                "failed": self.stats.failed,
                "skipped": self.stats.skipped,
                "last_firing": self.stats.last_firing.isoformat() if self.stats.last_firing else None,
                "last_error": self.stats.last_error,
            },
        }


class AlertScheduler:
    """Polls alert backends on per-job cron schedules and dispatches incidents.

    Example:
        >>> config = load_scheduled_alert_config("config/config.yaml")
        >>> scheduler = AlertScheduler(
        ...     config,
        ...     HttpIncidentSink("http://versus:3000/api/incidents"),
        ...     backend=APSchedulerCronBackend(),
        ... )
        >>> scheduler.start()
        >>> scheduler.status()
        >>> scheduler.stop()
    """

    def __init__(
        self,
        config: ScheduledAlertConfig,
        sink: DispatchSink,
        *,
        backend: CronBackend | None = None,
        client_factory: ClientFactory | None = None,
        fetch_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the scheduler.

        Args:
            config: Scheduled-alert configuration (global flag, zone, jobs)
            sink: Delivery pipeline entry point
            backend: Cron engine (default: APScheduler in the configured zone)
            client_factory: Builds the alert client for a job (tests inject fakes)
            fetch_timeout: Per-request timeout for alert backends in seconds
        """
        self.config = config
        self.sink = sink
        self.timezone = resolve_timezone(config.timezone)
        if backend is None:
            from .apscheduler_backend import APSchedulerCronBackend

            backend = APSchedulerCronBackend(self.timezone)
        self.backend = backend
        self.registry = JobRegistry()
        self.fetch_timeout = fetch_timeout
        self._client_factory = client_factory or default_client_factory

        self._handles: dict[str, JobHandle] = {}
        self._jobs: dict[str, JobDefinition] = {}
        self._stats = SchedulerStats()
        self._stats_lock = threading.Lock()
        self._lifecycle = threading.Lock()
        self._running = False
        self._stopped = False

    # === Lifecycle ===

    def start(self) -> None:
        """Register every enabled job and start the cron engine.

        Raises:
            ConfigurationError: a job has an empty or unparseable schedule.
                Nothing stays registered and the engine is not started.
        """
        with self._lifecycle:
            if self._running:
                logger.warning("scheduler_already_running")
                return
            if self._stopped:
                logger.warning("scheduler_already_stopped")
                return
            if not self.config.enable:
                logger.info("scheduled_alerts_disabled")
                return

            try:
                for job in self.config.jobs:
                    self._add_job(job)
            except ConfigurationError:
                self._rollback()
                raise

            self.backend.start()
            self._running = True
            self.registry.set_active(True)
            for name, handle in self._handles.items():
                self.registry.refresh_next_run(name, self.backend.next_run(handle))

        logger.info(
            "scheduler_started",
            jobs=len(self._handles),
            backend=self.backend.name,
            timezone=describe_timezone(self.timezone),
        )
        for entry in self.registry.snapshot():
            logger.info(
                "job_next_run",
                job=entry.name,
                next_run=entry.next_run.isoformat() if entry.next_run else None,
            )

    def stop(self) -> None:
        """Stop firing and wait for every in-flight firing to finish.

        Safe to call more than once.
        """
        with self._lifecycle:
            if self._stopped:
                return
            self._stopped = True
            self._running = False

        self.registry.close()
        self.backend.stop()
        self.registry.wait_idle()
        self.registry.set_active(False)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _add_job(self, job: JobDefinition) -> None:
        if not job.enable:
            logger.info("job_disabled_skipping", job=job.name)
            return

        try:
            cron_expression = resolve_schedule(job.schedule)
            handle = self.backend.register(
                TaskDescriptor(job.name, cron_expression, self.timezone),
                partial(self._fire, job),
            )
        except ConfigurationError as e:
            raise ConfigurationError(
                f"failed to add job '{job.name}': {e.message}", cause=e
            ).with_context(job=job.name) from e

        if job.name in self._handles:
            logger.warning("duplicate_job_name_replacing", job=job.name)
        self._handles[job.name] = handle
        self._jobs[job.name] = job
        self.registry.register(job.name, next_run=self.backend.next_run(handle))
        logger.info("job_added", job=job.name, schedule=cron_expression)

    def _rollback(self) -> None:
        for handle in self._handles.values():
            self.backend.remove(handle)
        self._handles.clear()
        self._jobs.clear()
        self.registry.clear()

    # === Firing ===

    def _fire(self, job: JobDefinition, fired_at: datetime) -> FiringOutcome:
        """Run one firing of *job*. Never raises."""
        handle = self._handles.get(job.name)
        next_run = self.backend.next_run(handle) if handle else None

        if not self.registry.begin_firing(job.name, fired_at, next_run):
            logger.warning("firing_skipped", job=job.name, stopped=self.registry.closed)
            self._record(FiringOutcome.SKIPPED, fired_at, None)
            return FiringOutcome.SKIPPED

        outcome, error = FiringOutcome.FAILED, None
        try:
            with LogContext(job=job.name):
                outcome, error = self._run(job, fired_at)
        finally:
            self.registry.end_firing(
                job.name,
                outcome,
                next_run=self.backend.next_run(handle) if handle else None,
                error=error,
            )
            self._record(outcome, fired_at, error)
        return outcome

    def execute(self, job: JobDefinition, fired_at: datetime | None = None) -> FiringOutcome:
        """Run fetch → filter → build → dispatch for *job* once, outside the registry."""
        fired_at = fired_at or self._now()
        with LogContext(job=job.name):
            outcome, _ = self._run(job, fired_at)
        return outcome

    def _run(self, job: JobDefinition, fired_at: datetime) -> tuple[FiringOutcome, str | None]:
        logger.info("firing_started", fired_at=fired_at.isoformat())
        try:
            client = self._client_factory(job.alertmanager, self.fetch_timeout)
            try:
                alerts = client.fetch()
            except (TransportError, FormatError) as e:
                logger.error("alerts_fetch_failed", **e.to_dict())
                return FiringOutcome.FETCH_FAILED, str(e)
            logger.info("alerts_fetched", count=len(alerts))

            matched = filter_alerts(alerts, job.match_labels)
            logger.info("alerts_matched", count=len(matched))

            payload = build_incident_payload(matched, now=fired_at)
            if payload is None:
                logger.info("no_alerts_matched_skipping_notification")
                return FiringOutcome.EMPTY, None

            payload = replace(
                payload,
                extra={
                    "scheduled_job": job.name,
                    "scheduled_time": format_rfc3339(fired_at),
                },
            )
            params = build_dispatch_params(job.channels)

            try:
                self.sink.deliver(SCHEDULED_SOURCE, payload.to_dict(), params)
            except DispatchError as e:
                logger.error("incident_dispatch_failed", **e.to_dict())
                return FiringOutcome.DISPATCH_FAILED, str(e)

            logger.info("incident_dispatched", alerts=len(matched))
            return FiringOutcome.DISPATCHED, None
        except Exception as e:
            logger.exception("firing_failed", error=str(e), retryable=is_retryable(e))
            return FiringOutcome.FAILED, str(e)

    def _record(self, outcome: FiringOutcome, fired_at: datetime, error: str | None) -> None:
        with self._stats_lock:
            stats = self._stats
            if outcome is FiringOutcome.SKIPPED:
                stats.skipped += 1
                return
            stats.firings += 1
            stats.last_firing = fired_at
            if outcome is FiringOutcome.DISPATCHED:
                stats.dispatched += 1
            elif outcome is FiringOutcome.EMPTY:
                stats.empty += 1
            else:
                stats.failed += 1
                stats.last_error = error

    def _now(self) -> datetime:
        return datetime.now(self.timezone) if self.timezone else datetime.now().astimezone()

    # === Manual Operations ===

    def trigger(self, job_name: str) -> FiringOutcome:
        """Fire a registered job now, in the caller's thread.

        Raises:
            KeyError: If no job with that name is registered
        """
        job = self._jobs.get(job_name)
        if job is None:
            raise KeyError(f"Job not found: {job_name}")
        return self._fire(job, self._now())

    # === Status & Health ===

    def status(self) -> list[JobRuntimeEntry]:
        """Snapshot of every registered job, in registration order."""
        return self.registry.snapshot()

    def health(self) -> SchedulerHealth:
        backend_health = self.backend.health()
        with self._stats_lock:
            stats = replace(self._stats)
        return SchedulerHealth(
            healthy=self._running and bool(backend_health.get("healthy", False)),
            enabled=self.config.enable,
            backend=backend_health,
            jobs=len(self.registry),
            timezone=describe_timezone(self.timezone),
            stats=stats,
        )

    def get_stats(self) -> SchedulerStats:
        with self._stats_lock:
            return replace(self._stats)
