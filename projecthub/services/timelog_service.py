"""Time log booking and listing (always scoped to the caller)."""

import logging

from projecthub.core.exceptions import NotFoundError, ValidationError
from projecthub.core.roles import ProjectRole
from projecthub.models import db
from projecthub.models.task import Task
from projecthub.models.timelog import TimeLog
from projecthub.services.access import require_project_role
from projecthub.utils.helpers import commit_or_raise, require_date

logger = logging.getLogger(__name__)


def list_time_logs(user_id):
    """The caller's time logs, most recent day first."""
    return (
        TimeLog.query.filter_by(user_id=user_id)
        .order_by(TimeLog.date.desc(), TimeLog.id.desc())
        .all()
    )


def log_time(principal, data: dict) -> TimeLog:
    missing = [f for f in ("task_id", "date", "hours") if data.get(f) in (None, "")]
    if missing:
        raise ValidationError("Missing required fields", details={f: "required" for f in missing})

    try:
        hours = float(data["hours"])
    except (TypeError, ValueError) as exc:
        raise ValidationError("hours must be a number", details={"hours": "invalid"}) from exc
    if hours < 0:
        raise ValidationError("hours must not be negative", details={"hours": "min 0"})
    day = require_date(data["date"], "date")

    task = db.session.get(Task, data["task_id"])
    if task is None:
        raise NotFoundError("Task", data["task_id"])
    require_project_role(principal, task.project_id, ProjectRole.GUEST)

    entry = TimeLog(
        user_id=principal.user_id,
        task_id=task.id,
        date=day,
        hours=hours,
        description=data.get("description", ""),
    )
    db.session.add(entry)
    commit_or_raise("TimeLog", "task_id", str(task.id))
    logger.debug("User %s logged %.2fh on task %s", principal.user_id, hours, task.id,
                 extra={"user_id": principal.user_id, "project_id": task.project_id})
    return entry
