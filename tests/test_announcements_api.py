"""
Tests for the announcement endpoints and read tracking.
"""

from datetime import datetime, timedelta

import pytest

from practice_service.helpers import utcnow
from practice_service.models import Announcement
from practice_service.services.announcement_service import AnnouncementService


@pytest.fixture
def announcements(db_session):
    now = utcnow()
    rows = [
        Announcement(
            id="a-old",
            title="Welcome",
            content="Hello",
            created_at=now - timedelta(days=2),
        ),
        Announcement(
            id="a-new",
            title="New sheet",
            content="Graphs sheet is live",
            priority="high",
            created_at=now - timedelta(hours=1),
        ),
        Announcement(
            id="a-hidden",
            title="Draft",
            content="Not yet",
            is_active=False,
            created_at=now - timedelta(hours=2),
        ),
        Announcement(
            id="a-expired",
            title="Contest",
            content="Over",
            expires_at=now - timedelta(minutes=1),
            created_at=now - timedelta(days=3),
        ),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


class TestListing:
    def test_lists_active_unexpired_newest_first(self, client, announcements):
        response = client.get("/api/announcements")

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert [a["id"] for a in body["data"]] == ["a-new", "a-old"]
        assert all(a["is_read"] is False for a in body["data"])

    def test_get_announcement(self, client, announcements):
        response = client.get("/api/announcements/a-new")

        assert response.status_code == 200
        assert response.json()["data"]["priority"] == "high"

    def test_get_missing_announcement(self, client):
        response = client.get("/api/announcements/nope")

        assert response.status_code == 404
        assert response.json()["message"] == "Announcement not found"


class TestAdminWrites:
    def test_create_announcement(self, client, admin_headers):
        response = client.post(
            "/api/announcements",
            json={
                "title": "Maintenance",
                "content": "Down at midnight",
                "priority": "low",
                "links": [{"title": "Status", "url": "https://status.example.com"}],
            },
            headers=admin_headers,
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["created_by"] == "admin-1"
        assert data["links"] == [{"title": "Status", "url": "https://status.example.com"}]
        assert data["is_active"] is True

    def test_create_rejects_bad_priority(self, client, admin_headers):
        response = client.post(
            "/api/announcements",
            json={"title": "x", "content": "y", "priority": "urgent"},
            headers=admin_headers,
        )

        assert response.status_code == 422

    def test_create_requires_admin(self, client, mentor_headers):
        response = client.post(
            "/api/announcements", json={"title": "x", "content": "y"}, headers=mentor_headers
        )

        assert response.status_code == 403

    def test_update_announcement(self, client, admin_headers, announcements):
        response = client.put(
            "/api/announcements/a-old", json={"is_active": False}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["is_active"] is False
        assert [a["id"] for a in client.get("/api/announcements").json()["data"]] == ["a-new"]

    def test_update_ignores_null_fields(self, client, admin_headers, announcements):
        response = client.put(
            "/api/announcements/a-old",
            json={"is_active": None, "title": None, "content": "Hello again"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["is_active"] is True
        assert data["title"] == "Welcome"
        assert data["content"] == "Hello again"

    def test_update_null_expiry_clears_it(self, client, admin_headers, announcements):
        response = client.put(
            "/api/announcements/a-expired", json={"expires_at": None}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["data"]["expires_at"] is None
        assert "a-expired" in [a["id"] for a in client.get("/api/announcements").json()["data"]]

    def test_delete_announcement(self, client, admin_headers, announcements):
        response = client.delete("/api/announcements/a-old", headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["data"] == {"deleted_id": "a-old", "deleted_title": "Welcome"}
        assert client.get("/api/announcements/a-old").status_code == 404


class TestReadTracking:
    def test_unread_count_for_new_user(self, client, user_headers, announcements):
        response = client.get("/api/announcements/unread-count", headers=user_headers)

        assert response.json()["data"] == {"unread_count": 2}

    def test_mark_as_read(self, client, user_headers, announcements):
        response = client.post("/api/announcements/a-new/read", headers=user_headers)

        assert response.status_code == 200
        assert client.get(
            "/api/announcements/unread-count", headers=user_headers
        ).json()["data"] == {"unread_count": 0}
        listed = client.get("/api/announcements", headers=user_headers).json()["data"]
        assert all(a["is_read"] for a in listed)
        status = client.get("/api/announcements/a-old/read-status", headers=user_headers)
        assert status.json()["data"] == {"is_read": True}

    def test_read_state_is_per_user(self, client, user_headers, other_user_headers, announcements):
        client.post("/api/announcements/a-new/read", headers=user_headers)

        response = client.get("/api/announcements/unread-count", headers=other_user_headers)

        assert response.json()["data"] == {"unread_count": 2}

    def test_mark_missing_announcement(self, client, user_headers):
        response = client.post("/api/announcements/nope/read", headers=user_headers)

        assert response.status_code == 404

    def test_unread_count_requires_auth(self, client):
        assert client.get("/api/announcements/unread-count").status_code == 401


class TestCleanup:
    def test_cleanup_expired(self, db_session, announcements):
        removed = AnnouncementService(db_session).cleanup_expired()

        assert removed == 1
        assert db_session.query(Announcement).filter_by(id="a-expired").count() == 0

    def test_create_normalizes_aware_expiry(self, db_session):
        service = AnnouncementService(db_session)
        aware = datetime.fromisoformat("2030-01-01T12:00:00+02:00")

        created = service.create_announcement(
            {"title": "x", "content": "y", "expires_at": aware}
        )

        assert created["expires_at"] == "2030-01-01T10:00:00"
