"""
Scheduled-alert job definitions and the YAML loader.

The job file mirrors the ``scheduled_alert`` block of the incident
service's config::

    scheduled_alert:
      enable: true
      timezone: "Asia/Ho_Chi_Minh"
      jobs:
        - name: nightly-disk
          enable: true
          schedule: "09:00"            # or "*/15 * * * *"
          alertmanager:
            url: http://alertmanager:9093
            username: ${AM_USER}
            password: ${AM_PASSWORD}
          match_labels:
            severity: critical
          channels:
            slack_channel_id: C0123456

``${VAR}`` references in string values are expanded from the environment.
The loaded :class:`ScheduledAlertConfig` is frozen and passed by reference
into the scheduler.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from alertspine.core.config.settings import AlertSpineSettings
from alertspine.core.errors import ConfigurationError


class AlertmanagerSettings(BaseModel):
    """Connection settings for one Alertmanager-compatible backend."""

    model_config = ConfigDict(frozen=True)

    url: str
    username: str = ""
    password: str = Field(default="", repr=False)


class ChannelOverrides(BaseModel):
    """Per-job destination overrides handed to the delivery pipeline."""

    model_config = ConfigDict(frozen=True)

    slack_channel_id: str = ""
    telegram_chat_id: str = ""
    lark_webhook_key: str = ""
    msteams_power_url_key: str = ""
    email_to: str = ""
    oncall_enable: bool = False


class JobDefinition(BaseModel):
    """One scheduled polling job."""

    model_config = ConfigDict(frozen=True)

    name: str
    enable: bool = False
    schedule: str = ""
    alertmanager: AlertmanagerSettings
    match_labels: dict[str, str] = Field(default_factory=dict)
    channels: ChannelOverrides = Field(default_factory=ChannelOverrides)


class ScheduledAlertConfig(BaseModel):
    """Global flag, shared time zone and the ordered job list."""

    model_config = ConfigDict(frozen=True)

    enable: bool = False
    timezone: str = ""
    jobs: list[JobDefinition] = Field(default_factory=list)


_ENV_REF = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def _expand_env(value: Any) -> Any:
    # Unset variables expand to "" so an absent secret disables basic auth
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def parse_scheduled_alert_config(data: dict[str, Any] | None) -> ScheduledAlertConfig:
    """Validate a mapping into a :class:`ScheduledAlertConfig`.

    Accepts either the ``scheduled_alert`` block itself or a document that
    contains it under the ``scheduled_alert`` key.
    """
    if data is None:
        return ScheduledAlertConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"scheduled alert config must be a mapping, got {type(data).__name__}"
        )
    block = data.get("scheduled_alert", data)
    if block is None:
        return ScheduledAlertConfig()
    try:
        return ScheduledAlertConfig.model_validate(_expand_env(block))
    except PydanticValidationError as e:
        raise ConfigurationError(f"invalid scheduled alert config: {e}", cause=e) from e


def load_scheduled_alert_config(path: str | Path) -> ScheduledAlertConfig:
    """Read and validate a YAML job file."""
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read config file {path}: {e}", cause=e) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {path}: {e}", cause=e) from e
    return parse_scheduled_alert_config(data)


def apply_overrides(
    config: ScheduledAlertConfig, settings: AlertSpineSettings
) -> ScheduledAlertConfig:
    """Return a copy of *config* with environment overrides applied."""
    update: dict[str, Any] = {}
    if settings.enable is not None:
        update["enable"] = settings.enable
    if settings.timezone is not None:
        update["timezone"] = settings.timezone
    return config.model_copy(update=update) if update else config
