"""Alert backends polled by scheduled jobs."""

from __future__ import annotations

from .alertmanager import (
    Alert,
    AlertmanagerClient,
    AlertSource,
    AlertStatus,
    decode_alerts,
)

__all__ = [
    "Alert",
    "AlertStatus",
    "AlertSource",
    "AlertmanagerClient",
    "decode_alerts",
]
