"""Label-predicate matching over fetched alerts."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from alertspine.sources.alertmanager import Alert


def matches_labels(labels: Mapping[str, str], predicate: Mapping[str, str]) -> bool:
    """True when every predicate key is present in *labels* with the same value."""
    for key, value in predicate.items():
        if key not in labels or labels[key] != value:
            return False
    return True


def filter_alerts(alerts: Sequence[Alert], predicate: Mapping[str, str]) -> list[Alert]:
    """Keep the alerts whose labels satisfy *predicate*, in their original order.

    An empty predicate matches everything. Matching is conjunctive and
    exact: no wildcards, regex, or negation.

    Example:
        >>> filter_alerts(alerts, {"severity": "critical", "team": "db"})
    """
    if not predicate:
        return list(alerts)
    return [alert for alert in alerts if matches_labels(alert.labels, predicate)]
