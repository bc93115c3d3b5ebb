"""Configuration: process settings and scheduled-alert job definitions."""

from __future__ import annotations

from .jobs import (
    AlertmanagerSettings,
    ChannelOverrides,
    JobDefinition,
    ScheduledAlertConfig,
    apply_overrides,
    load_scheduled_alert_config,
    parse_scheduled_alert_config,
)
from .settings import (
    AlertSpineSettings,
    CronBackendKind,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "AlertSpineSettings",
    "CronBackendKind",
    "get_settings",
    "clear_settings_cache",
    "AlertmanagerSettings",
    "ChannelOverrides",
    "JobDefinition",
    "ScheduledAlertConfig",
    "apply_overrides",
    "load_scheduled_alert_config",
    "parse_scheduled_alert_config",
]
