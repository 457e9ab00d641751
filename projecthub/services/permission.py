"""
Project-level Role-Based Access Control.

Two complementary checks over a user's ProjectMember row:

  * Ordinal check — ``has_project_permission(user_id, project_id, "BA")``
    passes when the member's role ranks at or above the required role on
    Guest < QA < Developer < BA < Manager.
  * Capability check — ``has_action(role, "updateOwnTasks")`` looks the
    action up in PROJECT_PERMISSIONS.

Usage:
    from projecthub.services.permission import check_project_permission

    # Raises PermissionDeniedError if not allowed
    check_project_permission(user_id=7, project_id=1, required_role="Developer")

    # Boolean check
    if has_project_permission(7, 1, ProjectRole.MANAGER):
        ...
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from projecthub.core.exceptions import PermissionDeniedError
from projecthub.core.roles import ProjectRole
from projecthub.models import db
from projecthub.models.project import ProjectMember

logger = logging.getLogger(__name__)


_GUEST_ACTIONS = frozenset({"viewProject", "viewTasksAssigned"})
_QA_ACTIONS = _GUEST_ACTIONS | {"updateOwnTasks"}
_DEVELOPER_ACTIONS = _QA_ACTIONS | {"createTasks", "commentOnTasks"}
_BA_ACTIONS = _DEVELOPER_ACTIONS | {
    "viewAllTasks", "updateTasks", "createModules",
}
_MANAGER_ACTIONS = _BA_ACTIONS | {
    "deleteTasks", "updateModules", "deleteModules",
    "addMembers", "removeMembers", "updateMemberRoles",
}

PROJECT_PERMISSIONS: dict[ProjectRole, frozenset[str]] = {
    ProjectRole.GUEST: _GUEST_ACTIONS,
    ProjectRole.QA: _QA_ACTIONS,
    ProjectRole.DEVELOPER: _DEVELOPER_ACTIONS,
    ProjectRole.BA: _BA_ACTIONS,
    ProjectRole.MANAGER: _MANAGER_ACTIONS,
}


def get_membership(user_id, project_id) -> ProjectMember | None:
    """Return the user's membership row in a project, or None."""
    if user_id is None:
        return None
    return (
        ProjectMember.query
        .filter_by(project_id=project_id, user_id=int(user_id))
        .first()
    )


def get_project_role(user_id, project_id) -> ProjectRole | None:
    """Return the user's ProjectRole in a project, or None without membership.

    Lookup failures are logged and reported as no membership.
    """
    try:
        member = get_membership(user_id, project_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Membership lookup failed for user=%s project=%s", user_id, project_id,
        )
        return None
    if member is None:
        return None
    try:
        return ProjectRole(member.role)
    except ValueError:
        logger.error("Membership %s carries unknown role %r", member.id, member.role)
        return None


def has_project_permission(user_id, project_id, required_role) -> bool:
    """
    Check whether the user's project role ranks at or above *required_role*.

    Args:
        user_id: Acting user id.
        project_id: Project to check against.
        required_role: ProjectRole or its string value. An unknown role name
            raises ValueError; it is a caller bug, not a denial.

    Returns:
        False when the user is not a member of the project.
    """
    required = ProjectRole(required_role)
    role = get_project_role(user_id, project_id)
    if role is None:
        return False
    return role.rank >= required.rank


def check_project_permission(user_id, project_id, required_role) -> ProjectRole:
    """Raise PermissionDeniedError unless the ordinal check passes.

    Returns the member's role on success.
    """
    required = ProjectRole(required_role)
    role = get_project_role(user_id, project_id)
    if role is None or role.rank < required.rank:
        logger.warning(
            "User %s denied: project %s requires %s (has %s)",
            user_id, project_id, required.value, role.value if role else None,
            extra={"user_id": user_id, "project_id": project_id},
        )
        raise PermissionDeniedError(user_id, f"act as {required.value}", f"project {project_id}")
    return role


def has_action(role, action: str) -> bool:
    """Return True if *role* grants *action* in PROJECT_PERMISSIONS."""
    if role is None:
        return False
    try:
        role = ProjectRole(role)
    except ValueError:
        return False
    return action in PROJECT_PERMISSIONS[role]


def get_project_permissions(user_id, project_id) -> dict:
    """Return ``{"role": ..., "actions": [...]}`` for the caller's membership."""
    role = get_project_role(user_id, project_id)
    if role is None:
        return {"role": None, "actions": []}
    return {"role": role.value, "actions": sorted(PROJECT_PERMISSIONS[role])}
