"""Tests for the ``alertspine`` CLI."""

from __future__ import annotations

import importlib

import pytest
from typer.testing import CliRunner

from alertspine.cli.app import app
from alertspine.scheduling import service
from tests._support.fakes import FakeSource, make_alert

runner = CliRunner()

CONFIG = """
scheduled_alert:
  enable: {enable}
  timezone: UTC
  jobs:
    - name: nightly
      enable: true
      schedule: "{schedule}"
      alertmanager:
        url: http://alertmanager:9093
      match_labels:
        severity: critical
    - name: parked
      enable: false
      schedule: ""
      alertmanager:
        url: http://alertmanager:9093
"""


@pytest.fixture()
def config_file(tmp_path):
    def _write(schedule: str = "09:00", enable: str = "true"):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG.format(schedule=schedule, enable=enable), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    # the package re-exports the Typer app under the module's name
    cli_module = importlib.import_module("alertspine.cli.app")
    monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: None)


class TestVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "alert-spine" in result.output


class TestValidate:
    def test_valid(self, config_file):
        result = runner.invoke(app, ["validate", "--config", config_file()])
        assert result.exit_code == 0, result.output
        assert "Configuration is valid" in result.output

    def test_invalid_schedule(self, config_file):
        result = runner.invoke(app, ["validate", "--config", config_file(schedule="900")])
        assert result.exit_code == 1
        assert "invalid schedules" in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["validate", "--config", str(tmp_path / "missing.yaml")])
        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_config_path_from_env(self, config_file, monkeypatch):
        monkeypatch.setenv("ALERTSPINE_CONFIG_PATH", config_file())
        result = runner.invoke(app, ["validate"])
        assert result.exit_code == 0, result.output


class TestTrigger:
    def test_dispatched(self, config_file, monkeypatch):
        source = FakeSource([make_alert({"severity": "critical"})])
        monkeypatch.setattr(service, "default_client_factory", lambda settings, timeout: source)

        result = runner.invoke(app, ["trigger", "nightly", "--config", config_file()])
        assert result.exit_code == 0, result.output
        assert "dispatched" in result.output
        assert source.calls == 1

    def test_empty(self, config_file, monkeypatch):
        monkeypatch.setattr(service, "default_client_factory", lambda settings, timeout: FakeSource([]))
        result = runner.invoke(app, ["trigger", "nightly", "--config", config_file()])
        assert result.exit_code == 0
        assert "empty" in result.output

    def test_fetch_failure_exits_nonzero(self, config_file, monkeypatch):
        from alertspine.core.errors import TransportError

        monkeypatch.setattr(
            service,
            "default_client_factory",
            lambda settings, timeout: FakeSource(error=TransportError("refused")),
        )
        result = runner.invoke(app, ["trigger", "nightly", "--config", config_file()])
        assert result.exit_code == 1
        assert "fetch_failed" in result.output

    def test_unknown_job(self, config_file):
        result = runner.invoke(app, ["trigger", "nope", "--config", config_file()])
        assert result.exit_code == 1
        assert "Job not found" in result.output


class TestRun:
    def test_run_serves_app_with_scheduler(self, config_file, monkeypatch):
        served = {}

        def fake_run(app_, **kwargs):
            served["app"] = app_
            served.update(kwargs)

        monkeypatch.setattr("uvicorn.run", fake_run)
        result = runner.invoke(app, ["run", "--config", config_file(), "--port", "9999", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert served["port"] == 9999
        assert served["host"] == "0.0.0.0"
        state = served["app"].state
        assert state.manage_scheduler is True
        assert state.scheduler is not None
        assert state.scheduler.is_running is False

    def test_run_disabled(self, config_file, monkeypatch):
        served = {}
        monkeypatch.setattr("uvicorn.run", lambda app_, **kwargs: served.update(app=app_))
        result = runner.invoke(app, ["run", "--config", config_file(enable="false")])

        assert result.exit_code == 0, result.output
        assert "disabled" in result.output
        assert served["app"].state.scheduler is None


class TestLoggingSetup:
    def test_trigger_configures_logging_from_settings(self, config_file, monkeypatch):
        """Commands that run firings configure logging from the process settings."""
        calls = []
        cli_module = importlib.import_module("alertspine.cli.app")
        monkeypatch.setattr(cli_module, "configure_logging", lambda **kwargs: calls.append(kwargs))
        monkeypatch.setattr(service, "default_client_factory", lambda settings, timeout: FakeSource([]))
        monkeypatch.setenv("ALERTSPINE_LOG_LEVEL", "DEBUG")

        result = runner.invoke(app, ["trigger", "nightly", "--config", config_file()])

        assert result.exit_code == 0, result.output
        assert calls == [{"level": "DEBUG", "json_format": True}]


class TestValidateDescriptors:
    def test_descriptor_schedule_is_valid(self, config_file):
        result = runner.invoke(app, ["validate", "--config", config_file(schedule="@daily")])
        assert result.exit_code == 0, result.output
        assert "Configuration is valid" in result.output

    def test_interval_descriptor_rejected(self, config_file):
        result = runner.invoke(app, ["validate", "--config", config_file(schedule="@every 15m")])
        assert result.exit_code == 1
        assert "invalid schedules" in result.output
