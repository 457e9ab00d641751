"""
Summary reports.

    project_summary  task counts by status and priority, completion, and
                     open issues by severity for one project (Guest+)
    user_summary     the caller's projects, assigned task counts and the
                     tasks assigned to them per day over the last week
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta, timezone

from projecthub.core.exceptions import NotFoundError
from projecthub.core.roles import ProjectRole
from projecthub.models import db
from projecthub.models.issue import ISSUE_SEVERITIES, Issue
from projecthub.models.project import Project, ProjectMember
from projecthub.models.task import TASK_PRIORITIES, TASK_STATUSES, Task
from projecthub.services.access import require_project_role
from projecthub.utils.helpers import to_utc

CLOSED_ISSUE_STATUSES = ("done", "wontfix", "duplicate")
WEEKLY_WINDOW_DAYS = 7


def _counts(values, keys, label):
    counter = Counter(values)
    return [{label: k, "count": counter.get(k, 0)} for k in keys]


def project_summary(principal, project_id) -> dict:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    require_project_role(principal, project_id, ProjectRole.GUEST)

    tasks = Task.query.filter_by(project_id=project_id).all()
    open_issues = Issue.query.filter(
        Issue.project_id == project_id,
        Issue.status.notin_(CLOSED_ISSUE_STATUSES),
    ).all()

    total = len(tasks)
    completed = sum(1 for t in tasks if t.status == "done")
    return {
        "project_id": project.id,
        "project_name": project.name,
        "task_status_counts": _counts([t.status for t in tasks], TASK_STATUSES, "status"),
        "task_priority_counts": _counts([t.priority for t in tasks], TASK_PRIORITIES, "priority"),
        "total_tasks": total,
        "completed_tasks": completed,
        "completion_pct": round(completed / total * 100) if total else 0,
        "conflicting_tasks": sum(1 for t in tasks if t.has_conflict),
        "open_issue_severity_counts": _counts([i.severity for i in open_issues], ISSUE_SEVERITIES, "severity"),
        "open_issues": len(open_issues),
    }


def user_summary(principal, *, today: date | None = None) -> dict:
    """
    Summary for the caller. Assigned tasks are counted across the projects
    the caller is a member of. ``weekly_task_counts`` covers the last
    WEEKLY_WINDOW_DAYS days plus today, one entry per day, oldest first.
    """
    uid = principal.user_id
    today = today or datetime.now(timezone.utc).date()
    window_start = today - timedelta(days=WEEKLY_WINDOW_DAYS)

    projects = (
        Project.query.join(ProjectMember, ProjectMember.project_id == Project.id)
        .filter(ProjectMember.user_id == uid)
        .order_by(Project.name.asc())
        .all()
    )
    project_ids = [p.id for p in projects]
    tasks = Task.query.filter(Task.project_id.in_(project_ids)).all() if project_ids else []

    per_project = Counter(t.project_id for t in tasks)
    assigned = [t for t in tasks if t.is_assigned_to(uid)]
    per_day = Counter(
        to_utc(t.created_at).date() for t in assigned
        if t.created_at is not None and window_start <= to_utc(t.created_at).date() <= today
    )

    return {
        "project_task_counts": [
            {"project_id": p.id, "project_name": p.name, "task_count": per_project.get(p.id, 0)}
            for p in projects
        ],
        "weekly_task_counts": [
            {"date": d.isoformat(), "count": per_day.get(d, 0)}
            for d in (window_start + timedelta(days=n) for n in range(WEEKLY_WINDOW_DAYS + 1))
        ],
        "total_projects": len(projects),
        "total_tasks": len(assigned),
        "completed_tasks": sum(1 for t in assigned if t.status == "done"),
    }
