"""
Tests for health check endpoints.
"""
import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from gitmonitor.config import Settings
from gitmonitor.main import create_app
from gitmonitor.metrics import Metrics
from gitmonitor.runtime import build_services


@pytest.fixture
def services():
    return build_services(Settings(BACKGROUND_TASKS_ENABLED=False), Metrics())


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as test_client:
        yield test_client


def test_health_liveness(client):
    """Test liveness health check."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == "gitmonitor"
    assert data["version"] == "0.1.0"
    assert "timestamp" in data


def test_health_readiness(client):
    """Test readiness health check."""
    r = client.get("/health/ready")
    # Should be 200 (ready) or 503 (not ready)
    assert r.status_code in [200, 503]
    data = r.json()
    assert data["service"] == "gitmonitor"
    assert data["checks"]["store"]["status"] == "ok"
    assert data["checks"]["pipeline"]["poller_running"] is False
    assert data["checks"]["subscribers"]["connections"] == 0
    assert "memory" in data["checks"]


def test_health_readiness_store_down(services, client):
    services.store.health_check = AsyncMock(return_value=False)

    r = client.get("/health/ready")

    assert r.status_code == 503
    assert r.json()["status"] == "not_ready"


def test_health_readiness_requires_running_loops():
    """With background tasks enabled, stopped loops mean not ready."""
    services = build_services(Settings(BACKGROUND_TASKS_ENABLED=True), Metrics())
    app = create_app(services=services)

    # No context manager: startup never runs, so nothing is started
    r = TestClient(app).get("/health/ready")

    assert r.status_code == 503
    assert r.json()["checks"]["pipeline"]["status"] == "error"


def test_metrics_endpoint(client):
    """Test Prometheus metrics endpoint."""
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    content = r.text
    assert "http_requests_total" in content
    assert "http_request_duration_seconds" in content
    assert "app_up" in content
    assert "gitmonitor_subscribers_active" in content


def test_correlation_id_in_response(client):
    """Test that correlation ID is added to response headers."""
    r = client.get("/health")
    assert "x-correlation-id" in r.headers


def test_correlation_id_propagation(client):
    """Test that provided correlation ID is propagated."""
    correlation_id = "test-correlation-id-123"
    r = client.get("/health", headers={"x-correlation-id": correlation_id})
    assert r.headers["x-correlation-id"] == correlation_id
