"""
Route decorators over the JWT context set by ``jwt_auth``.

Usage:
    @bp.route("/api/v1/tasks/my-tasks")
    @require_auth
    def my_tasks():
        principal = current_principal()
        ...

    @bp.route("/api/v1/scheduler/jobs")
    @require_system_role("admin")
    def list_jobs():
        ...
"""

import functools
import logging

from flask import g

from projecthub.services.policies import Principal, has_role
from projecthub.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_principal() -> Principal | None:
    """Principal for the authenticated caller, or None."""
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        return None
    return Principal(
        user_id=user_id,
        email=getattr(g, "jwt_email", None),
        roles=tuple(getattr(g, "jwt_roles", []) or []),
    )


def require_auth(f):
    """Decorator: reject requests without a valid bearer token (401)."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "jwt_user_id", None) is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_system_role(*roles: str):
    """Decorator: require the caller to hold at least ONE of the global roles."""
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            principal = current_principal()
            if principal is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")
            if not has_role(principal, *roles):
                logger.warning(
                    "User %s denied: requires one of %s on %s",
                    principal.user_id, roles, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied", details={"required": list(roles)})
            return f(*args, **kwargs)
        return decorated
    return decorator
