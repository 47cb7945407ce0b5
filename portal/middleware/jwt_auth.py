"""
JWT Auth Middleware — parses ``Authorization: Bearer <token>`` into ``g.actor_id``.

Public paths (health, the amount parser) skip the check. Everywhere else
under ``/api/v1/`` a missing, expired or tampered token is answered with
401 ``ERR_UNAUTHORIZED`` before the view runs.
"""

import logging

import jwt as pyjwt
from flask import g, request

from portal.services.jwt_service import decode_access_token
from portal.utils.errors import E, api_error

logger = logging.getLogger(__name__)

JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/finance/parse-amount",
)


def current_actor_id() -> str | None:
    return getattr(g, "actor_id", None)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor_id = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        if path.startswith(JWT_SKIP_PREFIXES):
            return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return api_error(E.UNAUTHORIZED, "Bearer token required")

        try:
            payload = decode_access_token(auth_header[7:].strip())
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHORIZED, "Token expired")
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token: %s", exc, extra={"event_type": "jwt_invalid", "path": path})
            return api_error(E.UNAUTHORIZED, "Invalid token")

        g.actor_id = payload["sub"]
        return None
