"""Authentication and authorization."""

from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings

logger = structlog.get_logger(__name__)
security = HTTPBearer(auto_error=False)

ROLES = ("user", "mentor", "admin")


class User:
    """Caller identity taken from the bearer token."""

    def __init__(self, id: str, email: Optional[str], role: str = "user"):
        self.id = id
        self.email = email
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"User(id={self.id}, email={self.email}, role={self.role})"


def decode_jwt_token(token: str) -> Optional[dict]:
    """Return the verified claims of ``token``, or None when it is expired or forged."""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.warning("JWT token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid JWT token", error=str(e))
        return None


def _user_from_payload(payload: dict) -> Optional[User]:
    user_id = payload.get("sub") or payload.get("user_id")
    if not user_id:
        return None
    role = payload.get("role", "user")
    if role not in ROLES:
        role = "user"
    return User(id=str(user_id), email=payload.get("email"), role=role)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """
    Resolve the caller of a protected route.

    Tokens may name the user in ``sub`` or ``user_id``. Roles outside
    user/mentor/admin are treated as plain users.

    Raises:
        HTTPException: 401 when the token is missing, invalid or has no user id
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
        )

    payload = decode_jwt_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user = _user_from_payload(payload)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    logger.debug("User authenticated", user_id=user.id, role=user.role)
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[User]:
    """Return the caller when a valid token is present, otherwise None."""
    if not credentials:
        return None
    payload = decode_jwt_token(credentials.credentials)
    if not payload:
        return None
    return _user_from_payload(payload)


def require_role(*roles: str):
    """
    Build a dependency that only admits users holding one of ``roles``.

    Usage::

        @router.post("/", dependencies=[Depends(require_role("admin"))])
    """

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.warning(
                "Access denied",
                user_id=current_user.id,
                role=current_user.role,
                required=list(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{' or '.join(r.capitalize() for r in roles)} access required",
            )
        return current_user

    return checker


require_admin = require_role("admin")
require_editor = require_role("admin", "mentor")
