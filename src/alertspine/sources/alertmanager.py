"""Alertmanager v2 API client.

Fetches the currently firing alerts from one Alertmanager-compatible
backend. The server is asked for active, non-silenced, non-inhibited
alerts only, and the response is filtered again to ``state == "active"``
so older or forked backends that ignore the query flags behave the same.

The client is stateless apart from its connection settings; the
scheduler builds one per firing.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

import httpx

from alertspine.core.errors import FormatError, TransportError
from alertspine.core.logging import get_logger

logger = get_logger(__name__)

ALERTS_PATH = "/api/v2/alerts"
ALERTS_QUERY = {"active": "true", "silenced": "false", "inhibited": "false"}
DEFAULT_TIMEOUT_SECONDS = 30.0
ACTIVE_STATE = "active"

_ERROR_BODY_LIMIT = 512
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


@dataclass(frozen=True)
class AlertStatus:
    """Alert state as reported by the backend."""

    state: str = ""
    silenced_by: tuple[str, ...] = ()
    inhibited_by: tuple[str, ...] = ()


@dataclass(frozen=True)
class Alert:
    """One alert from the backend's ``/api/v2/alerts`` response."""

    labels: Mapping[str, str] = field(default_factory=dict)
    annotations: Mapping[str, str] = field(default_factory=dict)
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    status: AlertStatus = field(default_factory=AlertStatus)
    receivers: tuple[str, ...] = ()
    fingerprint: str = ""
    generator_url: str = ""

    @property
    def is_active(self) -> bool:
        return self.status.state == ACTIVE_STATE

    @classmethod
    def from_dict(cls, data: Any) -> Alert:
        """Decode one wire object. Raises FormatError on contract violations."""
        if not isinstance(data, dict):
            raise FormatError(f"alert entry must be an object, got {type(data).__name__}")

        status = data.get("status") or {}
        if not isinstance(status, dict):
            raise FormatError("alert status must be an object")

        receivers = []
        for receiver in data.get("receivers") or []:
            if not isinstance(receiver, dict):
                raise FormatError("alert receiver must be an object")
            receivers.append(str(receiver.get("name", "")))

        return cls(
            labels=_string_map(data.get("labels"), "labels"),
            annotations=_string_map(data.get("annotations"), "annotations"),
            starts_at=_parse_timestamp(data.get("startsAt"), "startsAt"),
            ends_at=_parse_timestamp(data.get("endsAt"), "endsAt"),
            status=AlertStatus(
                state=str(status.get("state", "")),
                silenced_by=tuple(status.get("silencedBy") or ()),
                inhibited_by=tuple(status.get("inhibitedBy") or ()),
            ),
            receivers=tuple(receivers),
            fingerprint=str(data.get("fingerprint", "")),
            generator_url=str(data.get("generatorURL", "")),
        )


def _string_map(value: Any, field_name: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise FormatError(f"alert {field_name} must be an object")
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _parse_timestamp(value: Any, field_name: str) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise FormatError(f"alert {field_name} must be a string timestamp")
    try:
        # Alertmanager emits nanosecond precision
        return datetime.fromisoformat(_EXCESS_FRACTION.sub(r"\1", value))
    except ValueError as e:
        raise FormatError(f"alert {field_name} is not RFC 3339: {value!r}", cause=e) from e


def decode_alerts(body: Any) -> list[Alert]:
    """Decode a parsed response body into alerts, keeping active ones only."""
    if not isinstance(body, list):
        raise FormatError(f"expected a JSON array of alerts, got {type(body).__name__}")
    alerts = [Alert.from_dict(item) for item in body]
    return [alert for alert in alerts if alert.is_active]


@runtime_checkable
class AlertSource(Protocol):
    """Anything that can return the current set of firing alerts."""

    def fetch(self) -> Sequence[Alert]:
        """Return firing alerts. Raises TransportError or FormatError."""
        ...


class AlertmanagerClient:
    """Client for one Alertmanager-compatible backend.

    Example:
        >>> client = AlertmanagerClient("http://alertmanager:9093")
        >>> alerts = client.fetch()

    Args:
        base_url: Backend root URL (``/api/v2/alerts`` is appended)
        username: Basic-auth user; used only together with a password
        password: Basic-auth password
        timeout: Request timeout in seconds (default: 30)
        http_client: Optional ``httpx.Client`` for testing (mock injection)
    """

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.timeout = timeout
        self._http_client = http_client

    @property
    def alerts_url(self) -> str:
        return f"{self.base_url}{ALERTS_PATH}"

    def _auth(self) -> httpx.BasicAuth | None:
        if self.username and self.password:
            return httpx.BasicAuth(self.username, self.password)
        return None

    def fetch(self) -> list[Alert]:
        """Fetch all currently firing alerts.

        Raises:
            TransportError: network failure, timeout, or non-200 response
            FormatError: body is not a JSON array of alert objects
        """
        response = self._get()

        if response.status_code != httpx.codes.OK:
            raise TransportError(
                f"alertmanager returned status {response.status_code}: "
                f"{response.text[:_ERROR_BODY_LIMIT]}"
            ).with_context(url=self.alerts_url, http_status=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise FormatError("failed to parse alerts: body is not JSON", cause=e).with_context(
                url=self.alerts_url
            ) from e

        try:
            alerts = decode_alerts(body)
        except FormatError as e:
            e.with_context(url=self.alerts_url)
            raise

        logger.debug("alerts_decoded", url=self.alerts_url, received=len(body), active=len(alerts))
        return alerts

    def _get(self) -> httpx.Response:
        kwargs: dict[str, Any] = {
            "params": ALERTS_QUERY,
            "headers": {"Accept": "application/json"},
        }
        auth = self._auth()
        if auth is not None:
            kwargs["auth"] = auth

        try:
            if self._http_client is not None:
                return self._http_client.get(self.alerts_url, timeout=self.timeout, **kwargs)
            with httpx.Client(timeout=self.timeout) as client:
                return client.get(self.alerts_url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"failed to fetch alerts: {e}", cause=e).with_context(
                url=self.alerts_url
            ) from e
