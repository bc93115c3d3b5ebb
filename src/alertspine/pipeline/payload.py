"""Canonical incident payload built from a batch of matched alerts.

The payload has the shape of an Alertmanager webhook notification so the
delivery pipeline can render it with the same templates it uses for
pushed alerts::

    {
      "receiver": "scheduled-alert",
      "status": "firing",
      "alerts": [{"status", "labels", "annotations", "startsAt", "endsAt",
                  "fingerprint", "generatorURL"}, ...],
      "commonLabels": {...},        # copied from the first alert
      "commonAnnotations": {...},   # copied from the first alert
      "externalURL": "",
      "groupKey": "scheduled-1718000000"
    }

``groupKey`` is advisory metadata derived from the trigger wall-clock
second. Two jobs firing in the same second get the same key; nothing
downstream uses it for deduplication.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from alertspine.sources.alertmanager import Alert

RECEIVER_TAG = "scheduled-alert"
FIRING_STATUS = "firing"
GROUP_KEY_PREFIX = "scheduled-"

# Rendering of an absent timestamp (year one, midnight UTC)
ZERO_TIME = "0001-01-01T00:00:00Z"


def format_rfc3339(value: datetime | None) -> str:
    """Format a timestamp as RFC 3339 with second precision (``Z`` for UTC)."""
    if value is None:
        return ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    text = value.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


@dataclass(frozen=True)
class AlertRecord:
    """Per-alert entry of the incident payload."""

    status: str
    labels: dict[str, str]
    annotations: dict[str, str]
    starts_at: str
    ends_at: str
    fingerprint: str
    generator_url: str

    @classmethod
    def from_alert(cls, alert: Alert) -> AlertRecord:
        return cls(
            status=alert.status.state,
            labels=dict(alert.labels),
            annotations=dict(alert.annotations),
            starts_at=format_rfc3339(alert.starts_at),
            ends_at=format_rfc3339(alert.ends_at),
            fingerprint=alert.fingerprint,
            generator_url=alert.generator_url,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
            "startsAt": self.starts_at,
            "endsAt": self.ends_at,
            "fingerprint": self.fingerprint,
            "generatorURL": self.generator_url,
        }


@dataclass(frozen=True)
class IncidentPayload:
    """Provider-agnostic incident envelope handed to the delivery pipeline."""

    alerts: tuple[AlertRecord, ...]
    common_labels: dict[str, str]
    common_annotations: dict[str, str]
    group_key: str
    receiver: str = RECEIVER_TAG
    status: str = FIRING_STATUS
    external_url: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Wire form; ``extra`` keys (scheduling metadata) are merged at top level."""
        return {
            "receiver": self.receiver,
            "status": self.status,
            "alerts": [record.to_dict() for record in self.alerts],
            "commonLabels": dict(self.common_labels),
            "commonAnnotations": dict(self.common_annotations),
            "externalURL": self.external_url,
            "groupKey": self.group_key,
            **self.extra,
        }


def build_incident_payload(
    alerts: Sequence[Alert], *, now: datetime | None = None
) -> IncidentPayload | None:
    """Build the incident envelope for *alerts*.

    Returns ``None`` for an empty batch; callers must not dispatch it.
    Common labels and annotations come from the first alert, which is only
    meaningful when the label predicate already narrowed the batch to one
    homogeneous group.
    """
    if not alerts:
        return None

    now = now or datetime.now(UTC)
    first = alerts[0]
    return IncidentPayload(
        alerts=tuple(AlertRecord.from_alert(alert) for alert in alerts),
        common_labels=dict(first.labels),
        common_annotations=dict(first.annotations),
        group_key=f"{GROUP_KEY_PREFIX}{int(now.timestamp())}",
    )
