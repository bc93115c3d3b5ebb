"""
Shared pytest fixtures for alert-spine tests.

Fixtures:
    backend / source / sink   test doubles from ``tests._support.fakes``
    make_scheduler            AlertScheduler wired to those doubles
"""

from __future__ import annotations

import os

import pytest
import structlog

from alertspine.core.config import clear_settings_cache
from alertspine.scheduling.service import AlertScheduler
from tests._support.fakes import FakeBackend, FakeSource, RecordingSink, make_alert


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Drop ALERTSPINE_* variables and cached settings between tests."""
    for key in list(os.environ):
        if key.startswith("ALERTSPINE_"):
            monkeypatch.delenv(key)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def source() -> FakeSource:
    return FakeSource(
        [
            make_alert({"alertname": "DiskFull", "severity": "critical"}, {"summary": "disk full"}),
            make_alert({"alertname": "HighLoad", "severity": "warning"}),
        ]
    )


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def make_scheduler(backend, source, sink):
    """Build an AlertScheduler around the fakes; stops everything it built."""
    built: list[AlertScheduler] = []

    def _make(config, *, alert_source=None, delivery=None):
        scheduler = AlertScheduler(
            config,
            delivery or sink,
            backend=backend,
            client_factory=lambda settings, timeout: alert_source or source,
        )
        built.append(scheduler)
        return scheduler

    yield _make
    for scheduler in built:
        scheduler.stop()
