"""
Issue service — intake, triage state machine with SLA, task links.

Triage is the single transition out of ``new``:

    new → triaged | in_progress | wontfix | duplicate

At triage the SLA deadline is fixed from the issue's creation time and the
triaged severity (``SLA_HOURS``), and the breach flag is evaluated once,
against the triage time. A second triage fails with INVALID_STATUS.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app

from projecthub.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from projecthub.core.roles import ProjectRole
from projecthub.models import db
from projecthub.models.issue import (
    ISSUE_ENVIRONMENTS,
    ISSUE_PRIORITIES,
    ISSUE_SEVERITIES,
    ISSUE_STATUSES,
    ISSUE_TYPES,
    SLA_HOURS,
    TRIAGE_STATUSES,
    Issue,
)
from projecthub.models.project import Module, Project
from projecthub.models.task import Task
from projecthub.services import cache_service, policies
from projecthub.services.access import can_create_issue, require_project_role
from projecthub.services.notification import NotificationService
from projecthub.services.permission import get_project_role
from projecthub.utils.helpers import commit_or_raise, to_utc

logger = logging.getLogger(__name__)


def get_issue(issue_id) -> Issue:
    issue = db.session.get(Issue, issue_id)
    if issue is None:
        raise NotFoundError("Issue", issue_id)
    return issue


def compute_sla(created_at: datetime, severity: str, now: datetime) -> tuple[datetime, bool]:
    """Return (target_at, breached) for an issue created at *created_at*."""
    if severity not in SLA_HOURS:
        raise ValidationError(f"Invalid severity {severity!r}", details={"severity": list(ISSUE_SEVERITIES)})
    target_at = to_utc(created_at) + timedelta(hours=SLA_HOURS[severity])
    return target_at, to_utc(now) > target_at


def _choice(data, field, allowed, errors, default=None):
    value = data.get(field, default)
    if value is not None and value not in allowed:
        errors[field] = f"must be one of {', '.join(allowed)}"
    return value


def _user_ids(data, field, errors):
    raw = data.get(field)
    if raw is None:
        return None
    if not isinstance(raw, list):
        errors[field] = "must be a list of user ids"
        return None
    try:
        return list(dict.fromkeys(int(v) for v in raw))
    except (TypeError, ValueError):
        errors[field] = "must be a list of user ids"
        return None


def _require_members(project_id, user_ids) -> None:
    """Assignees must be members of the issue's project."""
    for uid in user_ids or []:
        if get_project_role(uid, project_id) is None:
            raise ValidationError(f"User {uid} is not a member of project {project_id}",
                                  details={"assignees": uid})


# ═══════════════════════════════════════════════════════════════════════════
#  Intake
# ═══════════════════════════════════════════════════════════════════════════

def create_issue(principal, project_id, data: dict) -> Issue:
    """Report a new issue in a project. Critical issues alert project managers."""
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    if not can_create_issue(principal, project_id):
        logger.warning("User %s denied: create issue in project %s", principal.user_id, project_id,
                       extra={"user_id": principal.user_id, "project_id": project_id})
        raise PermissionDeniedError(principal.user_id, "create", "issue")

    errors = {}
    title = (data.get("title") or "").strip()
    if not title:
        errors["title"] = "required"
    issue_type = _choice(data, "type", ISSUE_TYPES, errors, default="bug")
    severity = _choice(data, "severity", ISSUE_SEVERITIES, errors, default="medium")
    priority = _choice(data, "priority", ISSUE_PRIORITIES, errors, default="p2")
    environment = _choice(data, "environment", ISSUE_ENVIRONMENTS, errors)
    assignees = _user_ids(data, "assignees", errors)
    module_id = data.get("module_id")
    if errors:
        raise ValidationError("Invalid issue payload", details=errors)
    if module_id is not None:
        module = db.session.get(Module, module_id)
        if module is None or module.project_id != project_id:
            raise NotFoundError("Module", module_id)
    _require_members(project_id, assignees)

    issue = Issue(
        project_id=project_id,
        module_id=module_id,
        title=title,
        description=data.get("description", ""),
        type=issue_type,
        status="new",
        severity=severity,
        priority=priority,
        environment=environment,
        assignees=assignees or [],
        reporter_id=principal.user_id,
    )
    db.session.add(issue)
    commit_or_raise("Issue", "title", title)
    cache_service.invalidate_views("issues", project_id)

    if severity == "critical":
        NotificationService.notify_many(
            project.manager_ids(),
            message=f"Critical issue reported: {issue.title}",
            type="StatusUpdate",
            link=f"/issues/{issue.id}",
            exclude=principal.user_id,
        )
    logger.info("Issue %s reported in project %s (%s)", issue.id, project_id, severity,
                extra={"user_id": principal.user_id, "project_id": project_id})
    return issue


# ═══════════════════════════════════════════════════════════════════════════
#  Triage state machine
# ═══════════════════════════════════════════════════════════════════════════

def validate_triage_payload(data: dict) -> dict:
    """Return the normalised triage payload or raise ValidationError."""
    errors = {}
    status = data.get("status")
    if status not in TRIAGE_STATUSES:
        errors["status"] = f"must be one of {', '.join(TRIAGE_STATUSES)}"
    severity = _choice(data, "severity", ISSUE_SEVERITIES, errors)
    priority = _choice(data, "priority", ISSUE_PRIORITIES, errors)
    assignees = _user_ids(data, "assignees", errors)

    duplicate_of = data.get("duplicate_of")
    if duplicate_of is not None:
        try:
            duplicate_of = int(duplicate_of)
        except (TypeError, ValueError):
            errors["duplicate_of"] = "must be an issue id"
    if status == "duplicate" and duplicate_of is None and "duplicate_of" not in errors:
        errors["duplicate_of"] = "required when status is duplicate"

    notes = data.get("triage_notes")
    if notes is not None and not isinstance(notes, str):
        errors["triage_notes"] = "must be a string"
    if errors:
        raise ValidationError("Invalid triage payload", details=errors)

    return {
        "status": status,
        "severity": severity,
        "priority": priority,
        "assignees": assignees,
        "duplicate_of": duplicate_of,
        "triage_notes": notes,
    }


def triage_issue(issue: Issue, data: dict, principal, *, now: datetime | None = None) -> Issue:
    """
    Triage a ``new`` issue.

    Raises:
        PermissionDeniedError: caller lacks the ``triage`` right on issues.
        ValidationError: malformed payload.
        InvalidStateError: issue is no longer ``new`` (code INVALID_STATUS).

    On any failure the stored issue is left unchanged.
    """
    policies.require_permission(principal, "triage", "issue", issue)
    if issue.status != "new":
        raise InvalidStateError(f"Issue {issue.id} is '{issue.status}'; only 'new' issues can be triaged")
    payload = validate_triage_payload(data)

    if payload["duplicate_of"] is not None:
        original = db.session.get(Issue, payload["duplicate_of"])
        if original is None or original.id == issue.id or original.project_id != issue.project_id:
            raise ValidationError("duplicate_of must reference another issue in the same project",
                                  details={"duplicate_of": payload["duplicate_of"]})
    _require_members(issue.project_id, payload["assignees"])

    now = now or datetime.now(timezone.utc)
    severity = payload["severity"] or issue.severity
    target_at, breached = compute_sla(issue.created_at, severity, now)

    issue.status = payload["status"]
    issue.severity = severity
    if payload["priority"] is not None:
        issue.priority = payload["priority"]
    if payload["assignees"] is not None:
        issue.assignees = payload["assignees"]
    if payload["duplicate_of"] is not None:
        issue.duplicate_of_id = payload["duplicate_of"]
    if payload["triage_notes"] is not None:
        issue.triage_notes = payload["triage_notes"]
    issue.sla_target_at = target_at
    issue.sla_breached = breached
    issue.triaged_at = now
    if issue.status in ("wontfix", "duplicate"):
        issue.closed_at = now

    commit_or_raise("Issue", "id", issue.id)
    cache_service.invalidate_views("issues", issue.project_id)

    if payload["assignees"]:
        NotificationService.notify_many(
            payload["assignees"],
            message=f"Issue '{issue.title}' was triaged to you ({severity})",
            type="TaskAssigned",
            link=f"/issues/{issue.id}",
            exclude=principal.user_id,
        )
    logger.info("Issue %s triaged → %s severity=%s breached=%s", issue.id, issue.status, severity, breached,
                extra={"user_id": principal.user_id, "project_id": issue.project_id})
    return issue


# ═══════════════════════════════════════════════════════════════════════════
#  Links & queries
# ═══════════════════════════════════════════════════════════════════════════

def link_task(issue: Issue, task_id, principal) -> Issue:
    """Relate a task of the same project to the issue (both directions)."""
    policies.require_permission(principal, "update", "issue", issue)
    task = db.session.get(Task, task_id)
    if task is None or task.project_id != issue.project_id:
        raise NotFoundError("Task", task_id)
    if task in issue.related_tasks:
        raise InvalidStateError(f"Task {task.id} is already linked to issue {issue.id}", code="ALREADY_LINKED")

    issue.related_tasks.append(task)
    commit_or_raise("Issue", "task_id", task_id)
    cache_service.invalidate_views("issues", issue.project_id)
    cache_service.invalidate_views("tasks", issue.project_id)
    return issue


def view_issue(principal, issue_id) -> Issue:
    issue = get_issue(issue_id)
    require_project_role(principal, issue.project_id, ProjectRole.GUEST)
    return issue


def _load_project_issues(project_id, status=None, severity=None) -> list[dict]:
    q = Issue.query.filter_by(project_id=project_id)
    if status:
        q = q.filter_by(status=status)
    if severity:
        q = q.filter_by(severity=severity)
    return [i.to_dict() for i in q.order_by(Issue.created_at.desc(), Issue.id.desc()).all()]


def list_project_issues(principal, project_id, status=None, severity=None) -> list[dict]:
    if db.session.get(Project, project_id) is None:
        raise NotFoundError("Project", project_id)
    require_project_role(principal, project_id, ProjectRole.GUEST)
    if status and status not in ISSUE_STATUSES:
        raise ValidationError(f"Invalid status filter {status!r}")
    if severity and severity not in ISSUE_SEVERITIES:
        raise ValidationError(f"Invalid severity filter {severity!r}")
    key = cache_service.view_key("issues", project_id, f"{status or ''}|{severity or ''}")
    return cache_service.get_cached(
        key,
        ttl=current_app.config.get("VIEW_CACHE_TTL", 60),
        loader=lambda: _load_project_issues(project_id, status, severity),
    )
