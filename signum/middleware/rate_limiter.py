"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in signum/__init__.py with no default limits; this module applies
granular limits per route category.

Usage:
    from signum.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request as flask_request

logger = logging.getLogger(__name__)

WORKFLOW_WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def rate_limit_key():
    """Key by acting identity when present, else by remote IP."""
    actor_type = flask_request.headers.get("X-Actor-Type")
    actor_id = flask_request.headers.get("X-Actor-Id")
    if actor_type and actor_id:
        return f"{actor_type}:{actor_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per actor, falling back to remote IP):
        - documents (sign / reject / create):  60/minute
        - funds / notifications:              200/minute
        - health:                              exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("documents")
    if bp:
        limiter.limit(WORKFLOW_WRITE_LIMIT, key_func=rate_limit_key)(bp)

    for bp_name in ("funds", "notifications"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: documents %s, funds/notifications %s",
                    WORKFLOW_WRITE_LIMIT, READ_LIMIT)
