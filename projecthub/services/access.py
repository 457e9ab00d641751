"""
Combined access decisions used by the service layer.

A project-scoped operation is allowed when

    ordinal_check(required_role)
    OR (action_permitted(member_role, action) AND owns(principal, resource))

Global admins (policy ``*:*``) pass every project gate.
"""

import logging

from projecthub.core.exceptions import PermissionDeniedError
from projecthub.core.roles import ProjectRole
from projecthub.services import policies
from projecthub.services.permission import (
    check_project_permission,
    get_project_role,
    has_action,
)

logger = logging.getLogger(__name__)


def require_project_role(principal, project_id, required_role):
    """Raise PermissionDeniedError unless the caller ranks >= *required_role*.

    Admins bypass the membership requirement. Returns the member's
    ProjectRole (None for an admin without membership).
    """
    if policies.is_admin(principal):
        return get_project_role(principal.user_id, project_id)
    return check_project_permission(principal.user_id, project_id, required_role)


def _owns_task(principal, task) -> bool:
    return task.is_assigned_to(principal.user_id) or task.reporter_id == principal.user_id


def can_update_task(principal, task) -> bool:
    """Assignee, reporter, BA-or-above, or a global role allowed to update tasks."""
    if principal is None:
        return False
    if policies.has_permission(principal, "update", "task", task):
        return True
    role = get_project_role(principal.user_id, task.project_id)
    if role is None:
        return False
    if role.rank >= ProjectRole.BA.rank:
        return True
    return has_action(role, "updateOwnTasks") and _owns_task(principal, task)


def require_task_update(principal, task) -> None:
    if not can_update_task(principal, task):
        user_id = principal.user_id if principal else None
        logger.warning("User %s denied: update task %s", user_id, task.id,
                       extra={"user_id": user_id, "project_id": task.project_id})
        raise PermissionDeniedError(user_id, "update", "task")


def can_create_issue(principal, project_id) -> bool:
    """Project member with the global ``create issue`` right or at least QA."""
    if policies.is_admin(principal):
        return True
    role = get_project_role(principal.user_id, project_id)
    if role is None:
        return False
    return role.rank >= ProjectRole.QA.rank or policies.has_permission(principal, "create", "issue")
