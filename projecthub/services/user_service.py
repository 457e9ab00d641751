"""
User service — admin-side account management.

Admins list accounts, change their global roles (``roles``) or legacy
Admin/User flag (``system_role``), and deactivate them. Accounts are never
deleted: deactivation sets ``is_active = False`` and the JWT middleware
rejects every later request from that user.

Role changes apply to the next token the user is issued; tokens already
in circulation keep the roles they were minted with.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from projecthub.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from projecthub.core.roles import LegacySystemRole, SystemRole, resolve_system_roles
from projecthub.models import db
from projecthub.models.auth import User
from projecthub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("full_name", "system_role", "roles", "is_active")


def get_user(user_id) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def list_users(search: str | None = None, is_active: bool | None = None) -> list[User]:
    """All accounts, newest first; *search* matches name or email."""
    q = User.query
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(User.full_name.ilike(pattern), User.email.ilike(pattern)))
    if is_active is not None:
        q = q.filter(User.is_active.is_(is_active))
    return q.order_by(User.created_at.desc(), User.id.desc()).all()


def _validate_update(data: dict) -> dict:
    errors = {}
    changes = {}

    unknown = sorted(set(data) - set(UPDATABLE_FIELDS))
    if unknown:
        errors["fields"] = f"not updatable: {', '.join(unknown)}"

    if "full_name" in data:
        if not isinstance(data["full_name"], str):
            errors["full_name"] = "must be a string"
        else:
            changes["full_name"] = data["full_name"].strip()

    if "system_role" in data:
        try:
            changes["system_role"] = LegacySystemRole(data["system_role"]).value
        except ValueError:
            errors["system_role"] = f"must be one of {', '.join(r.value for r in LegacySystemRole)}"

    if "roles" in data:
        roles = data["roles"]
        valid = [r.value for r in SystemRole]
        if not isinstance(roles, list) or any(r not in valid for r in roles):
            errors["roles"] = f"must be a list drawn from {', '.join(valid)}"
        else:
            changes["roles"] = list(dict.fromkeys(roles))

    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            errors["is_active"] = "must be a boolean"
        else:
            changes["is_active"] = data["is_active"]

    if errors:
        raise ValidationError("Invalid user update", details=errors)
    if not changes:
        raise ValidationError("Nothing to update", details={"fields": list(UPDATABLE_FIELDS)})
    return changes


def _would_lose_admin(user: User, changes: dict) -> bool:
    roles = changes.get("roles", user.roles)
    legacy = changes.get("system_role", user.system_role)
    return SystemRole.ADMIN.value not in resolve_system_roles(roles, legacy)


def update_user(principal, user_id, data: dict) -> User:
    """
    Apply an admin's change to an account.

    Raises:
        NotFoundError: unknown user.
        ValidationError: unknown field or bad value.
        InvalidStateError: an admin deactivating or demoting themselves
            (code SELF_MODIFICATION).
    """
    user = get_user(user_id)
    changes = _validate_update(data)

    if user.id == principal.user_id:
        if changes.get("is_active") is False:
            raise InvalidStateError("You cannot deactivate your own account", code="SELF_MODIFICATION")
        if _would_lose_admin(user, changes):
            raise InvalidStateError("You cannot remove your own admin role", code="SELF_MODIFICATION")

    for field, value in changes.items():
        setattr(user, field, value)
    commit_or_raise("User", "id", str(user_id))
    logger.info("User %s updated by %s: %s", user_id, principal.user_id, sorted(changes),
                extra={"user_id": principal.user_id})
    return user


def deactivate_user(principal, user_id) -> User:
    """Soft-deactivate an account; repeated calls are no-ops."""
    return update_user(principal, user_id, {"is_active": False})
