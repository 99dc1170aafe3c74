"""
Tests for health, readiness and metrics endpoints.
"""

from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from practice_service.database import get_db
from practice_service.main import app


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "service": "practice-service",
            "version": "1.0.0",
        }

    def test_ready(self, client):
        response = client.get("/ready")

        assert response.status_code == 200
        body = response.json()
        assert body["ready"] is True
        assert body["checks"] == {"database": True, "problem_cache": False}

    def test_ready_returns_503_when_database_is_down(self, client):
        broken = MagicMock()
        broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        app.dependency_overrides[get_db] = lambda: broken

        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json() == {
            "ready": False,
            "checks": {"database": False, "problem_cache": False},
        }

    def test_metrics(self, client):
        client.get("/health")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "practice_http_requests_total" in response.text

    def test_root(self, client):
        assert client.get("/").json()["status"] == "operational"

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "not_found", "message": "Not Found"}
