"""
Unit Tests for API Routes

Health, admin and root endpoints served by the real application factory over
the in-memory store.
"""

from functools import partial

import pytest
from fastapi.testclient import TestClient

from src.app import create_app
from src.core.config.constants import HEADER_REQUEST_ID, SyncStatusState
from tests.test_fixtures.app_factory import make_runtime_factory


@pytest.fixture
def client(monkeypatch, mock_settings, store, mock_metrics_collector):
    monkeypatch.setattr("src.core.config.settings._settings", mock_settings)
    mock_metrics_collector.get_prometheus_metrics.return_value = b"stocksync_jobs_processed_total 3.0\n"
    mock_metrics_collector.get_content_type.return_value = "text/plain; version=0.0.4; charset=utf-8"

    app = create_app(runtime_factory=make_runtime_factory(mock_settings, store, mock_metrics_collector))
    with TestClient(app) as test_client:
        yield test_client


def call(client, func, *args, **kwargs):
    """Run a coroutine function on the application's event loop."""
    return client.portal.call(partial(func, *args, **kwargs))


@pytest.mark.unit
class TestHealthRoutes:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "1.0.0-test"
        assert data["components"] == {"store": "healthy"}

    def test_liveness(self, client):
        assert client.get("/health/live").json()["status"] == "alive"

    def test_readiness(self, client):
        assert client.get("/health/ready").status_code == 200

    def test_not_ready_when_store_down(self, client, store):
        store.healthy = False

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["detail"]["status"] == "not_ready"

    def test_health_reports_unhealthy_store(self, client, store):
        store.healthy = False

        assert client.get("/health").json()["status"] == "unhealthy"


@pytest.mark.unit
class TestJobSubmission:
    def test_job_is_queued(self, client):
        response = client.post(
            "/admin/jobs",
            json={"type": "full_sync", "resource_id": "store-1", "options": {"batch_size": 50, "priority": "high"}},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["queue"] == "pos-sync"
        assert body["priority"] == 20

        runtime = client.app.state.runtime
        job = call(client, runtime.queues.get("pos-sync").get_job, body["job_id"])
        assert job.name == "full_sync"
        assert job.data["resource_id"] == "store-1"
        assert job.data["options"]["batch_size"] == 50

    def test_syncing_resource_is_rejected(self, client):
        runtime = client.app.state.runtime
        call(client, runtime.status_cache.update, "store-1", status=SyncStatusState.SYNCING)

        response = client.post("/admin/jobs", json={"type": "stock_sync", "resource_id": "store-1"})

        assert response.status_code == 409

    def test_force_queues_anyway(self, client):
        runtime = client.app.state.runtime
        call(client, runtime.status_cache.update, "store-1", status=SyncStatusState.SYNCING)

        response = client.post(
            "/admin/jobs", json={"type": "stock_sync", "resource_id": "store-1", "options": {"force": True}}
        )

        assert response.status_code == 202

    @pytest.mark.parametrize(
        "payload",
        [
            {"type": "nightly", "resource_id": "store-1"},
            {"type": "full_sync", "resource_id": ""},
            {"type": "full_sync", "resource_id": "store-1", "options": {"batch_size": 0}},
        ],
    )
    def test_invalid_submission(self, client, payload):
        assert client.post("/admin/jobs", json=payload).status_code == 422


@pytest.mark.unit
class TestAdminViews:
    def test_queue_statistics(self, client):
        client.post("/admin/jobs", json={"type": "full_sync", "resource_id": "store-1"})

        stats = client.get("/admin/queues").json()

        assert stats["pos-sync"]["waiting"] == 1
        assert stats["critical-stock"]["waiting"] == 0

    def test_sync_status_defaults_to_idle(self, client):
        body = client.get("/admin/sync-status/store-9").json()

        assert body["resource_id"] == "store-9"
        assert body["status"] == "idle"
        assert body["error_count"] == 0

    def test_circuit_breaker_reset(self, client):
        name = client.app.state.runtime.erp.breaker.name

        assert name in client.get("/admin/circuit-breakers").json()
        assert client.post(f"/admin/circuit-breakers/{name}/reset").json() == {"status": "reset", "name": name}

    def test_unknown_circuit_breaker(self, client):
        assert client.post("/admin/circuit-breakers/nowhere/reset").status_code == 404

    def test_scheduler_status(self, client):
        body = client.get("/admin/scheduler").json()

        assert body["running"] is False
        assert body["timer_count"] > 0

    def test_unknown_timer(self, client):
        assert client.post("/admin/scheduler/nightly-nothing/trigger").status_code == 404

    def test_metrics(self, client):
        response = client.get("/admin/metrics")

        assert response.status_code == 200
        assert response.text.startswith("stocksync_jobs_processed_total")
        assert response.headers["content-type"].startswith("text/plain")


@pytest.mark.unit
class TestApplication:
    def test_root(self, client):
        body = client.get("/").json()

        assert body["name"] == "Stock Sync Test"
        assert body["environment"] == "test"

    def test_request_id_is_echoed(self, client):
        response = client.get("/health/live", headers={HEADER_REQUEST_ID: "req-123"})

        assert response.headers[HEADER_REQUEST_ID] == "req-123"

    def test_request_id_is_generated(self, client):
        assert client.get("/health/live").headers[HEADER_REQUEST_ID]

    def test_routes_need_a_started_runtime(self, monkeypatch, mock_settings):
        monkeypatch.setattr("src.core.config.settings._settings", mock_settings)
        app = create_app()

        response = TestClient(app).get("/health")

        assert response.status_code == 503
