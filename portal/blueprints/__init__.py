"""
DJT Portal
Blueprint registry and shared view helpers.
"""

import logging

from flask import g, request
from werkzeug.exceptions import HTTPException

from portal.core.exceptions import AuthenticationError, PortalError, ValidationError
from portal.models import db
from portal.utils.errors import E, api_error, error_response

logger = logging.getLogger(__name__)


def require_actor() -> str:
    """Profile id of the authenticated caller (set by the JWT middleware)."""
    actor_id = getattr(g, "actor_id", None)
    if not actor_id:
        raise AuthenticationError()
    return actor_id


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object expected", details={"_": "invalid body"})
    return data


def register_error_handlers(bp) -> None:
    """Map PortalError subclasses to ``api_error`` and anything else to 500."""

    @bp.errorhandler(PortalError)
    def _handle_portal_error(error: PortalError):
        if error.status >= 500:
            logger.warning(
                "%s on %s: %s", type(error).__name__, request.endpoint, error.message,
                extra={"request_id": getattr(g, "request_id", None), "code": error.code},
            )
        return error_response(error)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        db.session.rollback()
        logger.exception(
            "Unexpected error in %s endpoint=%s", bp.name, request.endpoint,
            extra={"request_id": getattr(g, "request_id", None)},
        )
        return api_error(E.INTERNAL, "Internal server error")
