"""Delivery of built incidents to the notification pipeline.

The scheduler does not talk to Slack, Telegram or e-mail itself. It hands
each payload to a :class:`DispatchSink` together with a flat parameter
map of per-channel overrides, the same query parameters the incident
service accepts on ``POST /api/incidents``.

Sinks:
    - HttpIncidentSink: POSTs to the incident service over HTTP
    - ConsoleSink: logs the payload (dry runs, local testing)
"""

from __future__ import annotations

import json
from typing import Any, Protocol, runtime_checkable

import httpx

from alertspine.core.config.jobs import ChannelOverrides
from alertspine.core.errors import DispatchError
from alertspine.core.logging import get_logger

logger = get_logger(__name__)

SCHEDULED_SOURCE = "scheduled"
SOURCE_HEADER = "X-Incident-Source"

# channel override field -> incident service query parameter
CHANNEL_PARAMS = {
    "slack_channel_id": "slack_channel_id",
    "telegram_chat_id": "telegram_chat_id",
    "lark_webhook_key": "lark_other_webhook_url",
    "msteams_power_url_key": "msteams_other_power_url",
    "email_to": "email_to",
}


@runtime_checkable
class DispatchSink(Protocol):
    """Incident-creation entry point of the delivery pipeline."""

    def deliver(self, source_tag: str, payload: dict[str, Any], params: dict[str, str]) -> None:
        """Create an incident. Raises DispatchError when delivery fails."""
        ...


def build_dispatch_params(channels: ChannelOverrides) -> dict[str, str]:
    """Build the override parameter map for one job.

    On-call escalation is off for scheduled incidents unless the job opts in.
    Only non-empty channel overrides are included.
    """
    params = {"oncall_enable": "true" if channels.oncall_enable else "false"}
    for field_name, param in CHANNEL_PARAMS.items():
        value = getattr(channels, field_name)
        if value:
            params[param] = value
    return params


class HttpIncidentSink:
    """POST incidents to the incident service.

    Example:
        >>> sink = HttpIncidentSink("http://versus:3000/api/incidents")
        >>> sink.deliver("scheduled", payload, {"oncall_enable": "false"})

    Args:
        url: Incident-creation endpoint
        timeout: Request timeout in seconds (default: 10)
        headers: Extra request headers (e.g. an API key)
        http_client: Optional ``httpx.Client`` for testing (mock injection)
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._headers = headers or {}
        self._http_client = http_client

    def deliver(self, source_tag: str, payload: dict[str, Any], params: dict[str, str]) -> None:
        headers = {"Content-Type": "application/json", SOURCE_HEADER: source_tag}
        headers.update(self._headers)

        try:
            if self._http_client is not None:
                response = self._http_client.post(
                    self.url, json=payload, params=params, headers=headers, timeout=self.timeout
                )
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(self.url, json=payload, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise DispatchError(f"failed to deliver incident: {e}", cause=e).with_context(
                url=self.url
            ) from e

        if not response.is_success:
            raise DispatchError(
                f"incident service returned status {response.status_code}: {response.text[:512]}"
            ).with_context(url=self.url, http_status=response.status_code)

        logger.debug("incident_delivered", url=self.url, status=response.status_code)


class ConsoleSink:
    """Log incidents instead of delivering them."""

    def __init__(self) -> None:
        self.delivered: int = 0

    def deliver(self, source_tag: str, payload: dict[str, Any], params: dict[str, str]) -> None:
        self.delivered += 1
        logger.info(
            "incident_dry_run",
            source=source_tag,
            params=params,
            alerts=len(payload.get("alerts", [])),
            payload=json.dumps(payload, sort_keys=True),
        )
