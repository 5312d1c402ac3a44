"""
JWT Service — session token generation and verification.

Token lifetime: 24 hours (configurable via JWT_EXPIRES_HOURS)
Algorithm:      HS256

Token payload:
{
    "id": <user_id>,
    "username": <username>,
    "iat": <issued_at>,
    "exp": <expires_at>
}
"""

from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

DEFAULT_EXPIRES_HOURS = 24
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_expires_hours():
    return current_app.config.get("JWT_EXPIRES_HOURS", DEFAULT_EXPIRES_HOURS)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_token(user) -> str:
    """Issue a session token for a User."""
    now = datetime.now(timezone.utc)
    payload = {
        "id": user.id,
        "username": user.username,
        "iat": now,
        "exp": now + timedelta(hours=_get_expires_hours()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str) -> dict:
    """
    Decode and verify a session token.

    Raises:
        jwt.ExpiredSignatureError: token expired
        jwt.InvalidTokenError: token invalid (bad signature, malformed, missing claims)
    """
    payload = jwt.decode(
        token, _get_secret(), algorithms=[ALGORITHM],
        options={"require": ["exp", "iat"]},
    )
    if "id" not in payload or "username" not in payload:
        raise jwt.InvalidTokenError("Token is missing user claims")
    return payload
