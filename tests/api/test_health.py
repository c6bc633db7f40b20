"""Tests for health and root endpoints."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from takeoff_ai.core.database import db_client

HEALTHY = {"status": "healthy", "connected": True, "database": "postgresql", "latency_test": "passed"}
UNHEALTHY = {"status": "unhealthy", "connected": False, "error": "connection refused"}


class TestHealthEndpoints:
    """Test suite for health checks."""

    def test_root_health(self, test_client: TestClient) -> None:
        with patch.object(db_client, "health_check", AsyncMock(return_value=HEALTHY)):
            response = test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert "version" in body

    def test_root_health_degraded(self, test_client: TestClient) -> None:
        with patch.object(db_client, "health_check", AsyncMock(return_value=UNHEALTHY)):
            response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"

    def test_v1_health_reports_database(self, test_client: TestClient) -> None:
        with patch.object(db_client, "health_check", AsyncMock(return_value=UNHEALTHY)):
            response = test_client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Service degraded"
        assert body["data"]["database"]["error"] == "connection refused"
        assert body["meta"]["api_version"] == "v1"

    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["docs"] == "/docs"
