"""
Task service — creation, status state machine, cached list views.

Status transitions are unrestricted between the five states; the only
side effect is on ``completed_date``:

    * → done   (from non-done)   completed_date = now
    done → *   (to non-done)     completed_date = None
    otherwise                    status write only

Writes invalidate the project's cached task list views.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app

from projecthub.core.exceptions import NotFoundError, ValidationError
from projecthub.core.roles import ProjectRole
from projecthub.models import db
from projecthub.models.project import Module, Project
from projecthub.models.task import TASK_PRIORITIES, TASK_STATUSES, Task, validate_task_transition
from projecthub.services import cache_service
from projecthub.services.access import require_project_role, require_task_update
from projecthub.services.notification import NotificationService
from projecthub.services.permission import get_project_role, has_action
from projecthub.services.policies import is_admin
from projecthub.utils.helpers import commit_or_raise, require_date

logger = logging.getLogger(__name__)


def get_task(task_id) -> Task:
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def _coerce_assignees(project_id, raw) -> list[int]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("assignees must be a list of user ids", details={"assignees": "not a list"})
    try:
        ids = list(dict.fromkeys(int(a) for a in raw))
    except (TypeError, ValueError) as exc:
        raise ValidationError("assignees must be a list of user ids",
                              details={"assignees": "invalid id"}) from exc
    for uid in ids:
        if get_project_role(uid, project_id) is None:
            raise ValidationError(f"User {uid} is not a member of project {project_id}",
                                  details={"assignees": uid})
    return ids


# ═══════════════════════════════════════════════════════════════════════════
#  Create
# ═══════════════════════════════════════════════════════════════════════════

def create_task(principal, project_id, data: dict) -> Task:
    """Create a task in a project (caller must be Developer or above)."""
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    require_project_role(principal, project_id, ProjectRole.DEVELOPER)

    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    status = data.get("status", "todo")
    if status not in TASK_STATUSES:
        raise ValidationError(f"Invalid status {status!r}", details={"status": list(TASK_STATUSES)})
    priority = data.get("priority", "medium")
    if priority not in TASK_PRIORITIES:
        raise ValidationError(f"Invalid priority {priority!r}", details={"priority": list(TASK_PRIORITIES)})

    module_id = data.get("module_id")
    if module_id is not None:
        module = db.session.get(Module, module_id)
        if module is None or module.project_id != project_id:
            raise NotFoundError("Module", module_id)

    start_date = require_date(data["start_date"], "start_date") if data.get("start_date") else None
    due_date = require_date(data["due_date"], "due_date") if data.get("due_date") else None
    if start_date and due_date and due_date < start_date:
        raise ValidationError("due_date must not precede start_date",
                              details={"due_date": "before start_date"})

    task = Task(
        project_id=project_id,
        module_id=module_id,
        title=title,
        description=data.get("description", ""),
        status=status,
        priority=priority,
        assignees=_coerce_assignees(project_id, data.get("assignees")),
        reporter_id=principal.user_id,
        start_date=start_date,
        due_date=due_date,
        estimated_hours=data.get("estimated_hours"),
        labels=data.get("labels") or [],
    )
    if status == "done":
        task.completed_date = datetime.now(timezone.utc)
    db.session.add(task)
    commit_or_raise("Task", "title", title)
    cache_service.invalidate_views("tasks", project_id)

    NotificationService.notify_many(
        task.assignee_ids(),
        message=f"You have been assigned a new task: {task.title}",
        type="TaskAssigned",
        link=f"/projects/{project_id}/tasks/{task.id}",
        exclude=principal.user_id,
    )
    logger.info("Task %s created in project %s by user %s", task.id, project_id, principal.user_id,
                extra={"user_id": principal.user_id, "project_id": project_id})
    return task


# ═══════════════════════════════════════════════════════════════════════════
#  Status state machine
# ═══════════════════════════════════════════════════════════════════════════

def apply_status(task: Task, new_status: str, now: datetime) -> None:
    """Write *new_status* and derive completed_date in the same step."""
    if new_status not in TASK_STATUSES:
        raise ValidationError(f"Invalid status {new_status!r}", details={"status": list(TASK_STATUSES)})
    if not validate_task_transition(task.status, new_status):
        raise ValidationError(f"Cannot move task from {task.status} to {new_status}")

    old_status = task.status
    if new_status == "done" and old_status != "done":
        task.completed_date = now
    elif new_status != "done" and old_status == "done":
        task.completed_date = None
    task.status = new_status


def update_task_status(task: Task, new_status: str, principal, *, now: datetime | None = None) -> Task:
    """
    Move a task to *new_status*.

    Raises:
        PermissionDeniedError: caller is not assignee, reporter, BA+ or a
            global role allowed to update tasks.
        ValidationError: unknown status.
    """
    require_task_update(principal, task)
    now = now or datetime.now(timezone.utc)
    old_status = task.status

    apply_status(task, new_status, now)
    commit_or_raise("Task", "id", task.id)
    cache_service.invalidate_views("tasks", task.project_id)

    if old_status != new_status:
        NotificationService.notify_many(
            task.assignee_ids(),
            message=f"Task '{task.title}' moved from {old_status} to {new_status}",
            type="StatusUpdate",
            link=f"/projects/{task.project_id}/tasks/{task.id}",
            exclude=principal.user_id,
        )
    logger.info("Task %s status %s → %s by user %s", task.id, old_status, new_status, principal.user_id,
                extra={"user_id": principal.user_id, "project_id": task.project_id})
    return task


# ═══════════════════════════════════════════════════════════════════════════
#  Queries
# ═══════════════════════════════════════════════════════════════════════════

def view_task(principal, task_id) -> Task:
    task = get_task(task_id)
    role = require_project_role(principal, task.project_id, ProjectRole.GUEST)
    if not _can_see(principal, role, task):
        raise NotFoundError("Task", task_id)
    return task


def _can_see(principal, role, task) -> bool:
    if is_admin(principal) or has_action(role, "viewAllTasks"):
        return True
    return task.is_assigned_to(principal.user_id) or task.reporter_id == principal.user_id


def _load_project_tasks(project_id, status=None, priority=None) -> list[dict]:
    q = Task.query.filter_by(project_id=project_id)
    if status:
        q = q.filter_by(status=status)
    if priority:
        q = q.filter_by(priority=priority)
    return [t.to_dict() for t in q.order_by(Task.created_at.desc(), Task.id.desc()).all()]


def list_project_tasks(principal, project_id, status=None, priority=None) -> list[dict]:
    """Return the project's tasks visible to the caller (cached per project)."""
    if db.session.get(Project, project_id) is None:
        raise NotFoundError("Project", project_id)
    role = require_project_role(principal, project_id, ProjectRole.GUEST)

    key = cache_service.view_key("tasks", project_id, f"{status or ''}|{priority or ''}")
    items = cache_service.get_cached(
        key,
        ttl=current_app.config.get("VIEW_CACHE_TTL", 60),
        loader=lambda: _load_project_tasks(project_id, status, priority),
    )
    if is_admin(principal) or has_action(role, "viewAllTasks"):
        return items
    uid = principal.user_id
    return [t for t in items if uid in t["assignees"] or t["reporter_id"] == uid]


def list_my_tasks(principal, status=None) -> list[Task]:
    """Tasks assigned to the caller across all projects, soonest due first."""
    q = Task.query
    if status:
        q = q.filter_by(status=status)
    tasks = [t for t in q.all() if t.is_assigned_to(principal.user_id)]
    tasks.sort(key=lambda t: (t.due_date is None, t.due_date or datetime.max.date(), t.id))
    return tasks


def parse_task_filters(args) -> dict:
    filters = {"status": args.get("status"), "priority": args.get("priority")}
    if filters["status"] and filters["status"] not in TASK_STATUSES:
        raise ValidationError(f"Invalid status filter {filters['status']!r}")
    if filters["priority"] and filters["priority"] not in TASK_PRIORITIES:
        raise ValidationError(f"Invalid priority filter {filters['priority']!r}")
    return filters
