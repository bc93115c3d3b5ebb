"""Per-firing pipeline stages: match, build, dispatch."""

from __future__ import annotations

from .dispatch import (
    SCHEDULED_SOURCE,
    ConsoleSink,
    DispatchSink,
    HttpIncidentSink,
    build_dispatch_params,
)
from .matching import filter_alerts, matches_labels
from .payload import (
    AlertRecord,
    IncidentPayload,
    build_incident_payload,
    format_rfc3339,
)

__all__ = [
    "filter_alerts",
    "matches_labels",
    "AlertRecord",
    "IncidentPayload",
    "build_incident_payload",
    "format_rfc3339",
    "DispatchSink",
    "HttpIncidentSink",
    "ConsoleSink",
    "SCHEDULED_SOURCE",
    "build_dispatch_params",
]
