"""
JWT Service — bearer token issue and verification.

Access token: 1 hour (configurable via JWT_ACCESS_EXPIRES)
Algorithm:    HS256

Token payload:
{
    "sub": <profile_id>,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

DEFAULT_ACCESS_EXPIRES = 3600
ALGORITHM = "HS256"


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def generate_access_token(profile_id: str, expires_in: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    ttl = expires_in if expires_in is not None else current_app.config.get(
        "JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES,
    )
    payload = {
        "sub": str(profile_id),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and verify an access token.

    Raises:
        jwt.ExpiredSignatureError: token expired.
        jwt.InvalidTokenError: bad signature, wrong type or missing subject.
    """
    payload = jwt.decode(
        token, _get_secret(), algorithms=[ALGORITHM], options={"require": ["exp", "sub"]},
    )
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Not an access token")
    return payload
