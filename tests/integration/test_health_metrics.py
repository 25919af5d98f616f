"""Integration tests for /healthz and /metrics endpoints."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from backend.app.main import app


@pytest.fixture
def client() -> TestClient:
    """Create test client."""
    return TestClient(app)


class TestHealthEndpoint:
    """Test /health and /healthz endpoints."""

    def test_health_is_always_ok(self, client: TestClient) -> None:
        """Test /health is a plain liveness probe."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @patch("backend.app.api.routes.health.check_db")
    def test_healthz_returns_200_when_db_ok(
        self, mock_check_db: MagicMock, client: TestClient
    ) -> None:
        """Test /healthz returns 200 when the database answers."""
        mock_check_db.return_value = (True, "ok")

        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "components": {"db": "ok"}}

    @patch("backend.app.api.routes.health.check_db")
    def test_healthz_returns_503_when_db_fails(
        self, mock_check_db: MagicMock, client: TestClient
    ) -> None:
        """Test /healthz returns 503 when DB check fails."""
        mock_check_db.return_value = (False, "error: OperationalError")

        response = client.get("/healthz")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["db"] == "error: OperationalError"


class TestMetricsEndpoint:
    """Test /metrics endpoint."""

    def test_metrics_returns_prometheus_format(self, client: TestClient) -> None:
        """Test /metrics returns Prometheus text format."""
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "# HELP" in response.text

    def test_metrics_includes_collaboration_counters(self, client: TestClient) -> None:
        """Test /metrics exposes the collaboration counters."""
        from backend.app.utils.metrics import events_appended_total, fanout_failures_total

        events_appended_total.labels(type="cursor_move").inc()
        fanout_failures_total.labels(type="presence_update").inc()

        text = client.get("/metrics").text

        assert "collab_events_appended_total" in text
        assert "collab_fanout_failures_total" in text
        assert "collab_sessions_created_total" in text
        assert "collab_versions_created_total" in text


class TestRootEndpoint:
    """Test root endpoint."""

    def test_root_returns_api_info(self, client: TestClient) -> None:
        """Test root endpoint returns API information."""
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Collaboration API"
        assert data["version"] == "0.1.0"
