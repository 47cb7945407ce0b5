"""JSON error envelope shared by every endpoint.

A failed call always answers ``{"error": <message>, "code": <ERR_*>}``, with
``"details"`` added when there are per-field problems::

    from portal.utils.errors import E, api_error, error_response

    return api_error(E.UNAUTHORIZED, "Bearer token required")
    return error_response(exc)   # any PortalError
"""

from __future__ import annotations

from flask import jsonify


class E:
    """``ERR_*`` codes the web client switches on."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    DEPENDENCY = "ERR_DEPENDENCY"
    INTERNAL = "ERR_INTERNAL"


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.RATE_LIMITED: 429,
    E.DEPENDENCY: 502,
    E.INTERNAL: 500,
}


def error_body(code: str, message: str, details: dict | None = None) -> dict:
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return body


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """``(response, status)`` ready to be returned from a view or hook.

    ``status`` defaults to the usual status for ``code`` (400 when unknown).
    """
    return jsonify(error_body(code, message, details)), status or STATUS_BY_CODE.get(code, 400)


def error_response(exc):
    """Render a ``PortalError`` with its own status."""
    return jsonify(exc.to_dict()), exc.status
