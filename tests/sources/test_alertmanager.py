"""Tests for AlertmanagerClient.

Uses httpx.MockTransport for the backend.
"""

from __future__ import annotations

import base64
from datetime import UTC, datetime

import httpx
import pytest

from alertspine.core.errors import FormatError, TransportError
from alertspine.sources.alertmanager import (
    Alert,
    AlertmanagerClient,
    AlertSource,
    decode_alerts,
)


def _wire_alert(state: str = "active", **labels: str) -> dict:
    return {
        "labels": labels or {"alertname": "DiskFull"},
        "annotations": {"summary": "disk almost full"},
        "startsAt": "2024-06-10T08:00:00.123456789Z",
        "endsAt": "2024-06-10T09:00:00Z",
        "status": {"state": state, "silencedBy": [], "inhibitedBy": []},
        "receivers": [{"name": "slack"}],
        "fingerprint": "abc123",
        "generatorURL": "http://prometheus:9090/graph",
    }


def _client(handler, **kwargs) -> AlertmanagerClient:
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return AlertmanagerClient("http://alertmanager:9093/", http_client=http_client, **kwargs)


class TestRequest:
    def test_url_and_query(self):
        """Asks for active, non-silenced, non-inhibited alerts."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        client = _client(handler)
        assert client.alerts_url == "http://alertmanager:9093/api/v2/alerts"
        client.fetch()

        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/api/v2/alerts"
        assert request.url.params["active"] == "true"
        assert request.url.params["silenced"] == "false"
        assert request.url.params["inhibited"] == "false"

    def test_basic_auth_when_both_credentials_set(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("authorization"))
            return httpx.Response(200, json=[])

        _client(handler, username="admin", password="hunter2").fetch()
        expected = base64.b64encode(b"admin:hunter2").decode()
        assert seen == [f"Basic {expected}"]

    @pytest.mark.parametrize(
        ("username", "password"),
        [("admin", ""), ("", "hunter2"), ("", "")],
    )
    def test_no_auth_with_partial_credentials(self, username, password):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("authorization"))
            return httpx.Response(200, json=[])

        _client(handler, username=username, password=password).fetch()
        assert seen == [None]

    def test_is_alert_source(self):
        assert isinstance(AlertmanagerClient("http://am"), AlertSource)


class TestDecoding:
    def test_decodes_alert(self):
        client = _client(lambda request: httpx.Response(200, json=[_wire_alert()]))
        (alert,) = client.fetch()

        assert alert.labels == {"alertname": "DiskFull"}
        assert alert.annotations["summary"] == "disk almost full"
        assert alert.starts_at == datetime(2024, 6, 10, 8, 0, 0, 123456, tzinfo=UTC)
        assert alert.ends_at == datetime(2024, 6, 10, 9, 0, tzinfo=UTC)
        assert alert.status.state == "active"
        assert alert.receivers == ("slack",)
        assert alert.fingerprint == "abc123"
        assert alert.generator_url == "http://prometheus:9090/graph"

    def test_keeps_only_active_alerts(self):
        """Backends that ignore the query flags are filtered client-side."""
        body = [
            _wire_alert("active", alertname="A"),
            _wire_alert("suppressed", alertname="B"),
            _wire_alert("unprocessed", alertname="C"),
            _wire_alert("active", alertname="D"),
        ]
        alerts = _client(lambda request: httpx.Response(200, json=body)).fetch()
        assert [a.labels["alertname"] for a in alerts] == ["A", "D"]

    def test_empty_array(self):
        assert _client(lambda request: httpx.Response(200, json=[])).fetch() == []

    def test_missing_optional_fields(self):
        alert = Alert.from_dict({"status": {"state": "active"}})
        assert alert.labels == {}
        assert alert.starts_at is None
        assert alert.receivers == ()

    def test_null_label_values_become_empty_strings(self):
        """A JSON null label or annotation value decodes as an empty string."""
        wire = _wire_alert()
        wire["labels"]["team"] = None
        wire["annotations"]["runbook"] = None

        alert = Alert.from_dict(wire)

        assert alert.labels["team"] == ""
        assert alert.annotations["runbook"] == ""
        assert alert.labels["alertname"] == "DiskFull"

    def test_decode_alerts_rejects_object(self):
        with pytest.raises(FormatError, match="JSON array"):
            decode_alerts({"alerts": []})

    def test_bad_timestamp(self):
        with pytest.raises(FormatError, match="startsAt"):
            Alert.from_dict({"startsAt": "yesterday", "status": {"state": "active"}})

    def test_labels_must_be_object(self):
        with pytest.raises(FormatError, match="labels"):
            Alert.from_dict({"labels": ["a"], "status": {"state": "active"}})


class TestErrors:
    def test_non_200_is_transport_error(self):
        client = _client(lambda request: httpx.Response(503, text="maintenance"))
        with pytest.raises(TransportError) as exc_info:
            client.fetch()

        error = exc_info.value
        assert "503" in error.message
        assert "maintenance" in error.message
        assert error.context.http_status == 503
        assert error.context.url == client.alerts_url
        assert error.retryable is True

    def test_error_body_truncated(self):
        client = _client(lambda request: httpx.Response(500, text="x" * 5000))
        with pytest.raises(TransportError) as exc_info:
            client.fetch()
        assert len(exc_info.value.message) < 600

    def test_network_error_is_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError) as exc_info:
            _client(handler).fetch()
        assert isinstance(exc_info.value.cause, httpx.ConnectError)

    def test_timeout_is_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportError):
            _client(handler).fetch()

    def test_non_json_is_format_error(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(FormatError) as exc_info:
            client.fetch()
        assert exc_info.value.context.url == client.alerts_url

    def test_wrong_shape_is_format_error(self):
        client = _client(lambda request: httpx.Response(200, json={"status": "success"}))
        with pytest.raises(FormatError) as exc_info:
            client.fetch()
        assert exc_info.value.context.url == client.alerts_url
