"""
Test configuration and fixtures
"""

import os

# Settings are read at import time; point them at test values first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-practice-service-tests"
os.environ["JOBS_SCHEDULER_ENABLED"] = "false"
os.environ["JOBS_FEED_URL"] = ""

from datetime import datetime, timedelta, timezone  # noqa: E402
from unittest.mock import patch  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from practice_service import cache as cache_module  # noqa: E402
from practice_service.database import get_db  # noqa: E402
from practice_service.main import app  # noqa: E402
from practice_service.models import Base  # noqa: E402
from practice_service.services import location_index as location_module  # noqa: E402

JWT_SECRET = os.environ["JWT_SECRET_KEY"]

# Create in-memory SQLite database for testing
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def create_test_jwt(
    user_id: str = "user-1",
    email: str = "user@example.com",
    role: str = "user",
    expires_in: int = 3600,
) -> str:
    """Create a test JWT token."""
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def auth_header(user_id: str = "user-1", role: str = "user") -> dict:
    return {"Authorization": f"Bearer {create_test_jwt(user_id=user_id, role=role)}"}


@pytest.fixture(autouse=True)
def reset_process_caches():
    """Problem cache and location memo are process-wide; start every test empty."""
    cache_module._problem_cache = None
    location_module._location_index = None
    yield
    cache_module._problem_cache = None
    location_module._location_index = None


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create a test client with database dependency override"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    # Mock init_db to prevent creating tables on the application engine
    with patch("practice_service.main.init_db"):
        app.dependency_overrides[get_db] = override_get_db
        with TestClient(app) as test_client:
            yield test_client
        app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return auth_header("user-1", "user")


@pytest.fixture
def other_user_headers():
    return auth_header("user-2", "user")


@pytest.fixture
def mentor_headers():
    return auth_header("mentor-1", "mentor")


@pytest.fixture
def admin_headers():
    return auth_header("admin-1", "admin")


@pytest.fixture
def sample_sheet_data():
    """Sheet with two sections; problem p1 appears in two subsections."""
    return {
        "id": "sheet-a",
        "name": "DSA Sheet",
        "description": "Core problems",
        "sections": [
            {
                "id": "sec-arrays",
                "name": "Arrays",
                "subsections": [
                    {"id": "sub-basics", "name": "Basics", "problem_ids": ["p1", "p2"]},
                    {"id": "sub-two-pointers", "name": "Two Pointers", "problem_ids": ["p1"]},
                ],
            },
            {
                "id": "sec-graphs",
                "name": "Graphs",
                "subsections": [
                    {"id": "sub-bfs", "name": "BFS", "problem_ids": ["p3"]},
                ],
            },
        ],
    }


@pytest.fixture
def sample_problem_data():
    return {
        "id": "p1",
        "title": "Two Sum",
        "practice_link": "https://leetcode.com/problems/two-sum/",
        "difficulty": "Easy",
        "platform": "LeetCode",
        "tags": ["array", "hashing"],
    }
