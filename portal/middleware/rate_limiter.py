"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in portal/__init__.py with no default limits; this module applies
granular limits per route category, keyed by the authenticated actor when
there is one and by remote address otherwise.

Usage:
    from portal.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]

WORKFLOW_WRITE_LIMIT = "30/minute"
READ_LIMIT = "200/minute"
PUBLIC_LIMIT = "120/minute"


def actor_or_ip_key():
    actor_id = getattr(g, "actor_id", None)
    if actor_id:
        return f"actor:{actor_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Workflow mutations (approve/reject, create/cancel/status/delete): 30/minute per actor
        - Reads on the same blueprints:                                      200/minute per actor
        - Org helpers (derive, scope, amount parser):                        120/minute
        - Health check:                                                      exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("registrations", "finance"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WORKFLOW_WRITE_LIMIT, key_func=actor_or_ip_key, methods=WRITE_METHODS)(bp)
            limiter.limit(READ_LIMIT, key_func=actor_or_ip_key, methods=["GET"])(bp)

    bp = app.blueprints.get("org")
    if bp:
        limiter.limit(PUBLIC_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: workflow writes %s, reads %s, org %s",
        WORKFLOW_WRITE_LIMIT, READ_LIMIT, PUBLIC_LIMIT,
    )
