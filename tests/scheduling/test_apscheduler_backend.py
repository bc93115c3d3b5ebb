"""Tests for APSchedulerCronBackend."""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest
from apscheduler.triggers.combining import OrTrigger

from alertspine.core.errors import InvalidScheduleError
from alertspine.scheduling.apscheduler_backend import APSchedulerCronBackend
from alertspine.scheduling.protocol import CronBackend, TaskDescriptor
from alertspine.scheduling.thread_backend import ThreadCronBackend


@pytest.fixture()
def backend():
    b = APSchedulerCronBackend(ZoneInfo("UTC"), max_workers=4, misfire_grace_seconds=30)
    yield b
    b.stop()


class TestRegistration:
    def test_is_cron_backend(self, backend):
        assert isinstance(backend, CronBackend)

    @pytest.mark.parametrize("bad", ["900", "* * * *", "61 * * * *"])
    def test_invalid_expression(self, backend, bad):
        with pytest.raises(InvalidScheduleError) as exc_info:
            backend.register(TaskDescriptor("bad", bad), lambda t: None)
        assert exc_info.value.schedule == bad

    def test_next_run_before_start(self, backend):
        handle = backend.register(TaskDescriptor("nightly", "0 9 * * *"), lambda t: None)
        next_run = backend.next_run(handle)
        assert next_run is not None
        assert next_run > datetime.now(UTC)
        assert (next_run.hour, next_run.minute) == (9, 0)
        assert next_run.utcoffset().total_seconds() == 0

    def test_task_timezone_wins(self, backend):
        handle = backend.register(
            TaskDescriptor("ict", "0 9 * * *", ZoneInfo("Asia/Ho_Chi_Minh")), lambda t: None
        )
        next_run = backend.next_run(handle)
        assert next_run.utcoffset().total_seconds() == 7 * 3600
        assert next_run.hour == 9

    def test_job_options(self, backend):
        backend.register(TaskDescriptor("a", "*/5 * * * *"), lambda t: None)
        job = backend._scheduler.get_job("a")
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.misfire_grace_time == 30

    def test_replace_existing(self, backend):
        backend.register(TaskDescriptor("a", "*/5 * * * *"), lambda t: None)
        handle = backend.register(TaskDescriptor("a", "0 9 * * *"), lambda t: None)
        backend.start()
        assert len(backend._scheduler.get_jobs()) == 1
        assert backend.next_run(handle).minute == 0

    def test_remove(self, backend):
        handle = backend.register(TaskDescriptor("a", "* * * * *"), lambda t: None)
        backend.remove(handle)
        assert backend.next_run(handle) is None
        assert backend._scheduler.get_job("a") is None


class TestFiring:
    def test_fire_records_prev_run(self, backend):
        fired = []
        handle = backend.register(TaskDescriptor("a", "0 9 * * *"), fired.append)

        backend._scheduler.get_job("a").func()

        assert len(fired) == 1
        assert backend.prev_run(handle) == fired[0]
        assert backend.next_run(handle) > fired[0]


class TestLifecycle:
    def test_start_stop(self, backend):
        backend.register(TaskDescriptor("a", "* * * * *"), lambda t: None)
        assert backend.health()["healthy"] is False

        backend.start()
        health = backend.health()
        assert health["healthy"] is True
        assert health["backend"] == "apscheduler"
        assert health["scheduled_jobs"] == 1

        backend.stop()
        assert backend.is_running is False
        assert backend.health()["healthy"] is False

    def test_double_start_warns(self, backend):
        backend.start()
        backend.start()
        assert backend.is_running is True

    def test_stop_is_idempotent(self, backend):
        backend.start()
        backend.stop()
        backend.stop()

    def test_next_run_none_after_stop(self, backend):
        handle = backend.register(TaskDescriptor("a", "* * * * *"), lambda t: None)
        backend.start()
        backend.stop()
        assert backend.next_run(handle) is None


class TestCrontabWeekdays:
    """Day-of-week numbers follow crontab (0 and 7 are Sunday)."""

    @pytest.mark.parametrize(
        ("expression", "weekday"),
        [("0 9 * * 1", 0), ("0 9 * * 5", 4), ("0 9 * * 0", 6), ("0 9 * * 7", 6)],
    )
    def test_single_day(self, backend, expression, weekday):
        handle = backend.register(TaskDescriptor("weekly", expression), lambda t: None)
        assert backend.next_run(handle).weekday() == weekday

    @pytest.mark.parametrize(
        "expression",
        [
            "0 9 * * 1",
            "0 9 * * 7",
            "0 9 * * 1-5",
            "30 6 * * 0,6",
            "0 12 * * */2",
            "0 9 * * mon-fri",
            "0 9 13 * 5",
            "0 9 1,15 * 1",
        ],
    )
    def test_same_next_run_as_thread_backend(self, backend, expression):
        """Both engines agree on when a schedule next fires."""
        thread = ThreadCronBackend()
        try:
            thread_handle = thread.register(TaskDescriptor("job", expression, UTC), lambda t: None)
            aps_handle = backend.register(TaskDescriptor("job", expression), lambda t: None)
            assert backend.next_run(aps_handle) == thread.next_run(thread_handle)
        finally:
            thread.stop()

    def test_weekday_range_covers_workweek(self, backend):
        backend.register(TaskDescriptor("workweek", "0 9 * * 1-5"), lambda t: None)
        trigger = backend._scheduler.get_job("workweek").trigger
        assert str(trigger.fields[4]) == "mon,tue,wed,thu,fri"

    def test_out_of_range_weekday_rejected(self, backend):
        with pytest.raises(InvalidScheduleError):
            backend.register(TaskDescriptor("bad", "0 9 * * 8"), lambda t: None)

    def test_day_of_month_or_weekday(self, backend):
        """With both day fields restricted, either one matching fires the job."""
        handle = backend.register(TaskDescriptor("either", "0 9 13 * 5"), lambda t: None)
        trigger = backend._scheduler.get_job("either").trigger
        assert isinstance(trigger, OrTrigger)

        next_run = backend.next_run(handle)
        assert next_run.day == 13 or next_run.weekday() == 4
        assert (next_run - datetime.now(UTC)).days < 7
