"""
Process settings for alert-spine.

:class:`AlertSpineSettings` holds everything that is not part of the job
file: where the job file lives, which cron backend to run, timeouts, the
delivery endpoint, API bind address and logging. Values come from
``ALERTSPINE_*`` environment variables or a ``.env`` file.

The job definitions themselves live in :mod:`alertspine.core.config.jobs`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CronBackendKind(str, Enum):
    """Available cron engines."""

    APSCHEDULER = "apscheduler"
    THREAD = "thread"


class AlertSpineSettings(BaseSettings):
    """alert-spine process configuration.

    All fields can be set via ``ALERTSPINE_*`` environment variables (e.g.
    ``ALERTSPINE_TIMEZONE=Asia/Ho_Chi_Minh``).
    """

    model_config = SettingsConfigDict(
        env_prefix="ALERTSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Job file ─────────────────────────────────────────────────
    config_path: str = Field(default="config/config.yaml")
    enable: bool | None = Field(default=None, description="Overrides scheduled_alert.enable")
    timezone: str | None = Field(default=None, description="Overrides scheduled_alert.timezone")

    # ── Scheduler ────────────────────────────────────────────────
    scheduler_backend: CronBackendKind = Field(default=CronBackendKind.APSCHEDULER)
    max_workers: int = Field(default=20, ge=1)
    misfire_grace_seconds: int = Field(default=60, ge=1)

    # ── Alert backends ───────────────────────────────────────────
    fetch_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Delivery ─────────────────────────────────────────────────
    dispatch_url: str = Field(default="", description="Incident-creation endpoint; empty logs payloads only")
    dispatch_timeout_seconds: float = Field(default=10.0, gt=0)

    # ── API ──────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3000)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")


_settings_cache: dict[str, AlertSpineSettings] = {}


def get_settings(*, _force_reload: bool = False) -> AlertSpineSettings:
    """Load, validate, and cache an :class:`AlertSpineSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = AlertSpineSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
