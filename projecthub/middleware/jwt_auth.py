"""
JWT Auth Middleware — parses the bearer token and sets g.jwt_*.

    Authorization: Bearer <token>  →  g.jwt_user_id, g.jwt_email, g.jwt_roles

Invalid, expired or deactivated-user tokens leave the request
unauthenticated; route decorators decide whether that is a 401.
"""

import logging

import jwt as pyjwt
from flask import g, request

from projecthub.models import db
from projecthub.models.auth import User
from projecthub.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_email = None
        g.jwt_roles = []

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        try:
            payload = decode_access_token(auth_header[7:])
            user_id = int(payload.get("sub"))
        except (pyjwt.ExpiredSignatureError, pyjwt.InvalidTokenError) as exc:
            logger.info("Rejected bearer token: %s", exc)
            return
        except (TypeError, ValueError):
            logger.info("Rejected bearer token with malformed subject")
            return

        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            logger.info("Rejected token for missing or inactive user %s", user_id)
            return

        g.jwt_user_id = user_id
        g.jwt_email = payload.get("email") or user.email
        g.jwt_roles = list(payload.get("roles", []))
