"""
Tests for the jobs endpoints.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from practice_service.dependencies import get_job_feed_client
from practice_service.main import app

JOBS = [
    {"id": "job-1", "title": "SDE 1", "company": "Acme", "location": "Pune", "job_description": "Java and DSA"},
    {"id": "job-2", "title": "Accountant", "company": "Books", "location": "Mumbai"},
]


@pytest.fixture
def imported(client, admin_headers):
    response = client.post("/api/jobs/import", json={"jobs": JOBS}, headers=admin_headers)
    assert response.status_code == 200
    return response.json()["data"]


@pytest.fixture
def feed_client():
    mock = MagicMock()
    mock.is_configured = True
    mock.fetch_jobs = AsyncMock(return_value=[{"title": "Frontend Developer", "company": "Web Co"}])
    app.dependency_overrides[get_job_feed_client] = lambda: mock
    yield mock
    app.dependency_overrides.pop(get_job_feed_client, None)


class TestJobsApi:
    def test_import(self, imported):
        assert imported == {"inserted": 2, "updated": 0, "errors": 0}

    def test_import_requires_admin(self, client, user_headers):
        response = client.post("/api/jobs/import", json={"jobs": JOBS}, headers=user_headers)

        assert response.status_code == 403

    def test_list_jobs(self, client, imported):
        body = client.get("/api/jobs").json()

        assert body["count"] == 2

    def test_tech_jobs(self, client, imported):
        body = client.get("/api/jobs/tech").json()

        assert [j["id"] for j in body["data"]] == ["job-1"]

    def test_search_jobs(self, client, imported):
        body = client.get("/api/jobs/search", params={"q": "mumbai"}).json()

        assert [j["id"] for j in body["data"]] == ["job-2"]

    def test_search_requires_term(self, client):
        response = client.get("/api/jobs/search")

        assert response.status_code == 400
        assert response.json()["message"] == "Search term is required"

    def test_get_job(self, client, imported):
        response = client.get("/api/jobs/job-1")

        assert response.status_code == 200
        assert response.json()["data"]["company"] == "Acme"

    def test_get_missing_job(self, client):
        assert client.get("/api/jobs/nope").status_code == 404

    def test_stats(self, client, imported):
        data = client.get("/api/jobs/stats").json()["data"]

        assert data["total"] == 2
        assert data["by_company"] == {"Acme": 1, "Books": 1}

    def test_fetch_status_requires_admin(self, client, user_headers, admin_headers):
        assert client.get("/api/jobs/fetch-status", headers=user_headers).status_code == 403
        response = client.get("/api/jobs/fetch-status", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["request_count"] == 0

    def test_manual_sync(self, client, admin_headers, feed_client):
        response = client.post("/api/jobs/sync", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"]["inserted"] == 1
        feed_client.fetch_jobs.assert_awaited_once()
        status = client.get("/api/jobs/fetch-status", headers=admin_headers).json()["data"]
        assert status["request_count"] == 1

    def test_sync_without_feed_configured(self, client, admin_headers):
        response = client.post("/api/jobs/sync", headers=admin_headers)

        assert response.status_code == 502
        assert response.json()["error"] == "external_service_error"
