"""JWT access token validation (HS256).

Tokens are issued by the identity provider that owns signup and login;
this service only verifies them with the shared secret and reads the
claims it needs (sub, roles, email, name).

create_access_token exists for tests and local scripts so they can mint
tokens the same way the identity provider does.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt

from app.core.config import SETTINGS

ALGORITHM = "HS256"
ACCESS_TOKEN_TTL_MIN = 60


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    email: str | None = None,
    name: str | None = None,
    ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
) -> str:
    """Build and sign an access token with the identity provider's claim set."""
    now = datetime.now(UTC)
    payload: dict = {
        "sub": sub,
        "aud": SETTINGS.jwt_audience,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["Student"],
    }
    if email is not None:
        payload["email"] = email
    if name is not None:
        payload["name"] = name
    return jwt.encode(payload, SETTINGS.jwt_secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to HS256 so alg:none and alg-switching tokens are
    rejected.  exp and aud are validated by PyJWT.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        SETTINGS.jwt_secret,
        algorithms=[ALGORITHM],
        audience=SETTINGS.jwt_audience,
        options={"require": ["sub", "exp", "iat"]},
    )
