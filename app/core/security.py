"""JWT access token helpers.

Tokens are issued by the account service; this service only verifies them.
``create_access_token`` exists for local tooling and tests.
"""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from app.core.config import settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    student_id: int,
    role: str = "student",
    expires_in: timedelta = timedelta(minutes=30),
) -> str:
    """Create a signed access token for a student."""
    now = datetime.now(UTC)
    payload = {
        "sub": str(student_id),
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "jti": str(uuid.uuid4()),
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(
        payload,
        settings.auth.secret_key.get_secret_value(),
        algorithm=settings.auth.algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a token. Raises ``jwt.InvalidTokenError`` subclasses."""
    return jwt.decode(
        token,
        settings.auth.secret_key.get_secret_value(),
        algorithms=[settings.auth.algorithm],
    )
