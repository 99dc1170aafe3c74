"""Small shared helpers: identifiers, timestamps and response envelopes."""

import secrets
import time
from datetime import datetime, timezone
from typing import Any, Optional

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """
    Generate a short document identifier.

    Nine random base36 characters followed by the current time in
    milliseconds, also base36. Caller-supplied ids are kept as-is.
    """
    random_part = "".join(secrets.choice(_BASE36) for _ in range(9))
    return random_part + _to_base36(int(time.time() * 1000))


def utcnow() -> datetime:
    """Naive UTC now, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def success_response(
    data: Any = None, message: Optional[str] = None, **extra: Any
) -> dict:
    """Build the ``{"success": true, "data": ...}`` envelope."""
    body: dict = {"success": True}
    if message is not None:
        body["message"] = message
    body.update(extra)
    body["data"] = data
    return body


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
