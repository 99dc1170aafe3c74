"""
Tests for JWT authentication and role checks.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from practice_service.auth import (
    decode_jwt_token,
    get_current_user,
    get_optional_user,
    require_role,
)

from .conftest import JWT_SECRET, create_test_jwt


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestDecode:
    def test_valid_token(self):
        payload = decode_jwt_token(create_test_jwt("u1", role="mentor"))

        assert payload["sub"] == "u1"
        assert payload["role"] == "mentor"

    def test_expired_token(self):
        assert decode_jwt_token(create_test_jwt("u1", expires_in=-10)) is None

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "u1"}, "another-secret-key-that-is-long-enough", algorithm="HS256")

        assert decode_jwt_token(token) is None


class TestCurrentUser:
    @pytest.mark.asyncio
    async def test_missing_token(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(None)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Missing authentication token"

    @pytest.mark.asyncio
    async def test_user_id_claim_fallback(self):
        token = jwt.encode(
            {
                "user_id": "legacy-1",
                "email": "a@example.com",
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            },
            JWT_SECRET,
            algorithm="HS256",
        )

        user = await get_current_user(_credentials(token))

        assert user.id == "legacy-1"
        assert user.role == "user"

    @pytest.mark.asyncio
    async def test_payload_without_subject(self):
        token = jwt.encode({"email": "a@example.com"}, JWT_SECRET, algorithm="HS256")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(_credentials(token))

        assert exc_info.value.detail == "Invalid token payload"

    @pytest.mark.asyncio
    async def test_unknown_role_downgraded(self):
        user = await get_current_user(_credentials(create_test_jwt("u1", role="superuser")))

        assert user.role == "user"
        assert user.is_admin is False

    @pytest.mark.asyncio
    async def test_optional_user(self):
        assert await get_optional_user(None) is None
        assert await get_optional_user(_credentials("garbage")) is None
        user = await get_optional_user(_credentials(create_test_jwt("u1")))
        assert user.id == "u1"


class TestRequireRole:
    @pytest.mark.asyncio
    async def test_allowed_role(self):
        checker = require_role("admin", "mentor")
        user = await get_current_user(_credentials(create_test_jwt("m1", role="mentor")))

        assert await checker(user) is user

    @pytest.mark.asyncio
    async def test_denied_role(self):
        checker = require_role("admin")
        user = await get_current_user(_credentials(create_test_jwt("u1", role="user")))

        with pytest.raises(HTTPException) as exc_info:
            await checker(user)

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Admin access required"
