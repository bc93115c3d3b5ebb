"""Tests for the status API."""

from __future__ import annotations

from fastapi.testclient import TestClient

from alertspine.api import create_app
from tests._support.fakes import make_config, make_job


class TestSchedulerStatus:
    def test_disabled_without_scheduler(self):
        client = TestClient(create_app(None))
        response = client.get("/api/scheduler/status")
        assert response.status_code == 503
        assert response.json() == {"status": "disabled", "message": "Scheduled alerts are not enabled"}

    def test_disabled_when_not_running(self, make_scheduler):
        scheduler = make_scheduler(make_config(make_job("a")))
        response = TestClient(create_app(scheduler)).get("/api/scheduler/status")
        assert response.status_code == 503

    def test_enabled(self, make_scheduler, backend):
        scheduler = make_scheduler(make_config(make_job("a"), make_job("b")))
        scheduler.start()
        backend.fire("a")

        response = TestClient(create_app(scheduler)).get("/api/scheduler/status")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "enabled"
        assert [job["name"] for job in body["jobs"]] == ["a", "b"]

        job_a = body["jobs"][0]
        assert job_a["active"] is True
        assert job_a["fire_count"] == 1
        assert job_a["last_outcome"] == "dispatched"
        assert job_a["prev_run"] is not None
        assert job_a["next_run"].startswith("2099-01-01T09:00:00")
        assert body["jobs"][1]["prev_run"] is None

    def test_custom_prefix(self, make_scheduler):
        scheduler = make_scheduler(make_config(make_job("a")))
        scheduler.start()
        client = TestClient(create_app(scheduler, api_prefix="/v2"))
        assert client.get("/v2/scheduler/status").status_code == 200


class TestHealthz:
    def test_disabled(self):
        response = TestClient(create_app(None)).get("/healthz")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "disabled"
        assert body["service"] == "alert-spine"
        assert body["scheduler"] is None

    def test_healthy(self, make_scheduler):
        scheduler = make_scheduler(make_config(make_job("a")))
        scheduler.start()
        response = TestClient(create_app(scheduler)).get("/healthz")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["scheduler"]["jobs"] == 1

    def test_unhealthy_when_enabled_but_stopped(self, make_scheduler):
        scheduler = make_scheduler(make_config(make_job("a")))
        response = TestClient(create_app(scheduler)).get("/healthz")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


class TestLifespan:
    def test_managed_scheduler_started_and_stopped(self, make_scheduler, backend):
        scheduler = make_scheduler(make_config(make_job("a")))
        app = create_app(scheduler, manage_scheduler=True)

        with TestClient(app) as client:
            assert scheduler.is_running is True
            assert client.get("/api/scheduler/status").status_code == 200

        assert scheduler.is_running is False
        assert backend.stopped is True

    def test_unmanaged_scheduler_untouched(self, make_scheduler, backend):
        scheduler = make_scheduler(make_config(make_job("a")))
        with TestClient(create_app(scheduler)):
            assert scheduler.is_running is False
        assert backend.started is False
