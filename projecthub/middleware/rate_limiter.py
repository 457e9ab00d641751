"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter
instance is created in projecthub/__init__.py with no default limits;
this module applies limits per route category.

Usage:
    from projecthub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
EXPORT_LIMIT = "10/minute"

_WRITE_BLUEPRINTS = ("projects", "tasks", "issues", "timelogs", "users")
_READ_BLUEPRINTS = ("notifications", "reports")


def user_or_ip_key():
    """Limit key: authenticated user id if present, else remote IP."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is not None:
        return f"user:{user_id}"
    return request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per user, falling back to remote IP):
        - Export endpoints:  10/minute
        - Write blueprints:  60/minute
        - Read blueprints:   200/minute
        - Health check:      exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("export")
    if bp:
        limiter.limit(EXPORT_LIMIT, key_func=user_or_ip_key)(bp)

    for bp_name in _WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=user_or_ip_key)(bp)

    for bp_name in _READ_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT, key_func=user_or_ip_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    logger.info("Rate limiter configured — export: %s, write: %s, read: %s",
                EXPORT_LIMIT, WRITE_LIMIT, READ_LIMIT)
