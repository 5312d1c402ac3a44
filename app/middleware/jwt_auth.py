"""
JWT Auth Middleware — every /api/v1/ request needs a Bearer token.

Public paths:
    /api/v1/health, /api/v1/auth/login, /api/v1/auth/logout

Responses:
    no token          → 401 "Access denied. No token provided."
    bad/expired token → 403 "Invalid or expired token."

On success ``g.current_user`` holds ``{"id", "username"}`` from the token.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import decode_token
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/auth/login",
    "/api/v1/auth/logout",
)


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        token = _bearer_token()
        if not token:
            return api_error(E.UNAUTHORIZED, "Access denied. No token provided.")

        try:
            payload = decode_token(token)
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected token on %s: %s", path, exc)
            return api_error(E.FORBIDDEN, "Invalid or expired token.")

        g.current_user = {"id": payload["id"], "username": payload["username"]}
        return None
