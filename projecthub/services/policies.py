"""
Global role / resource policy.

Orthogonal to project membership: decides whether a principal's global
roles (JWT ``roles`` claim) allow an action on a resource type, optionally
constrained by a condition over the concrete resource instance.

Rule matching, per rule of every role the principal holds:
    ("*", "*")               — everything
    (action, resource)       — exact
    ("*", resource)          — any action on resource
    (action, "*")            — action on any resource
A matching rule grants access when it has no condition or its condition
holds for the resource instance. Otherwise matching continues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple

from projecthub.core.exceptions import PermissionDeniedError
from projecthub.core.roles import SystemRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller identity as carried by the access token."""

    user_id: int
    email: str | None = None
    roles: tuple[str, ...] = field(default_factory=tuple)


class Rule(NamedTuple):
    action: str
    resource: str
    condition: Callable[[Principal, Any], bool] | None = None


# ── Conditions ───────────────────────────────────────────────────────────────

def _is_project_manager(principal: Principal, project) -> bool:
    return project is not None and principal.user_id in project.manager_ids()


def _is_assignee(principal: Principal, item) -> bool:
    return item is not None and item.is_assigned_to(principal.user_id)


def _is_own_profile(principal: Principal, profile) -> bool:
    return profile is not None and getattr(profile, "id", None) == principal.user_id


# ── Rule table ───────────────────────────────────────────────────────────────

ROLE_PERMISSIONS: dict[SystemRole, list[Rule]] = {
    SystemRole.ADMIN: [
        Rule("*", "*"),
    ],
    SystemRole.MANAGER: [
        Rule("read", "*"),
        Rule("create", "project"),
        Rule("update", "project", _is_project_manager),
        Rule("delete", "project", _is_project_manager),
        Rule("create", "module"),
        Rule("update", "module"),
        Rule("delete", "module"),
        Rule("create", "task"),
        Rule("update", "task"),
        Rule("delete", "task"),
        Rule("create", "issue"),
        Rule("update", "issue"),
        Rule("triage", "issue"),
        Rule("manage", "team"),
    ],
    SystemRole.QA_LEAD: [
        Rule("read", "*"),
        Rule("create", "test_case"),
        Rule("update", "test_case"),
        Rule("delete", "test_case"),
        Rule("create", "test_suite"),
        Rule("update", "test_suite"),
        Rule("delete", "test_suite"),
        Rule("create", "test_run"),
        Rule("update", "test_run"),
        Rule("create", "issue"),
        Rule("update", "issue"),
        Rule("link", "defect"),
    ],
    SystemRole.TEAM_MEMBER: [
        Rule("read", "*"),
        Rule("update", "task", _is_assignee),
        Rule("create", "issue"),
        Rule("update", "issue", _is_assignee),
        Rule("execute", "test_run"),
        Rule("update", "profile", _is_own_profile),
    ],
    SystemRole.GUEST: [
        Rule("read", "project"),
        Rule("read", "task"),
        Rule("read", "issue"),
        Rule("read", "test_case"),
    ],
}


def _rule_matches(rule: Rule, action: str, resource: str) -> bool:
    if rule.action == "*" and rule.resource == "*":
        return True
    return (
        rule.action in ("*", action)
        and rule.resource in ("*", resource)
    )


def _iter_roles(principal: Principal):
    for name in principal.roles:
        try:
            yield SystemRole(name)
        except ValueError:
            logger.debug("Ignoring unknown role %r for user %s", name, principal.user_id)


def has_permission(principal: Principal | None, action: str, resource: str, resource_data=None) -> bool:
    """Return True if any of the principal's roles grants *action* on *resource*."""
    if principal is None:
        return False
    for role in _iter_roles(principal):
        for rule in ROLE_PERMISSIONS[role]:
            if not _rule_matches(rule, action, resource):
                continue
            if rule.condition is None or rule.condition(principal, resource_data):
                return True
    return False


def require_permission(principal: Principal | None, action: str, resource: str, resource_data=None) -> None:
    """Raise PermissionDeniedError unless has_permission() passes."""
    if not has_permission(principal, action, resource, resource_data):
        user_id = principal.user_id if principal else None
        logger.warning(
            "User %s denied: %s %s", user_id, action, resource,
            extra={"user_id": user_id},
        )
        raise PermissionDeniedError(user_id, action, resource)


def has_role(principal: Principal | None, *roles) -> bool:
    if principal is None:
        return False
    wanted = {SystemRole(r).value for r in roles}
    return any(r in wanted for r in principal.roles)


def is_admin(principal: Principal | None) -> bool:
    return has_role(principal, SystemRole.ADMIN)


def is_manager(principal: Principal | None) -> bool:
    return has_role(principal, SystemRole.MANAGER)


def is_qa_lead(principal: Principal | None) -> bool:
    return has_role(principal, SystemRole.QA_LEAD)
