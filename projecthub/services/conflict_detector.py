"""
Task schedule-conflict detection.

Two tasks assigned to the same person conflict when they share a priority,
that priority is high or critical, and their [start_date, due_date] ranges
overlap (inclusive bounds):

    A.start <= B.due and A.due >= B.start

``find_conflicts`` is the pure grouping + interval sweep.
``check_task_conflicts`` is the job: load, flag, notify, publish.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import date
from typing import Iterable, NamedTuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from projecthub.core.exceptions import InfrastructureError
from projecthub.models import db
from projecthub.models.task import CONFLICT_PRIORITIES, Task
from projecthub.services import cache_service, event_bus
from projecthub.services.notification import NotificationService
from projecthub.services.scheduler_service import register_job

logger = logging.getLogger(__name__)

CONFLICT_EVENT_MESSAGE = "Task conflict detected"
CONFLICT_LINK = "/dashboard"

_scan_lock = threading.Lock()


class TaskWindow(NamedTuple):
    task_id: int
    assignees: tuple[int, ...]
    priority: str
    start: date
    due: date


def windows_from_tasks(tasks: Iterable[Task]) -> list[TaskWindow]:
    """Project ORM tasks to windows, skipping tasks without both dates."""
    windows = []
    for t in tasks:
        if t.start_date is None or t.due_date is None:
            continue
        windows.append(TaskWindow(t.id, tuple(t.assignee_ids()), t.priority, t.start_date, t.due_date))
    return windows


def find_conflicts(windows: Iterable[TaskWindow]) -> dict[int, list[int]]:
    """
    Return ``{user_id: sorted conflicting task ids}`` for every assignee with
    at least two conflicting tasks.

    Per (assignee, priority) group, windows are sorted by (start, task_id)
    and swept pairwise; the inner scan stops once B starts after A is due.
    """
    groups: dict[tuple[int, str], list[TaskWindow]] = defaultdict(list)
    for w in windows:
        if w.priority not in CONFLICT_PRIORITIES:
            continue
        for user_id in dict.fromkeys(w.assignees):
            groups[(user_id, w.priority)].append(w)

    per_user: dict[int, set[int]] = defaultdict(set)
    for (user_id, _priority), items in groups.items():
        items.sort(key=lambda w: (w.start, w.task_id))
        for i, a in enumerate(items):
            for b in items[i + 1:]:
                if b.start > a.due:
                    break
                if a.start <= b.due and a.due >= b.start:
                    per_user[user_id].update((a.task_id, b.task_id))

    return {uid: sorted(ids) for uid, ids in sorted(per_user.items()) if len(ids) >= 2}


def conflict_message(count: int) -> str:
    return f"You have {count} conflicting tasks that overlap in schedule."


def _flag_tasks(conflicts: dict[int, list[int]], clear_stale: bool) -> tuple[int, int, set[int]]:
    """Set or clear ``has_conflict``; returns (flagged, cleared, touched project ids)."""
    flagged_ids = {tid for ids in conflicts.values() for tid in ids}
    flagged = cleared = 0
    touched: set[int] = set()
    if flagged_ids:
        for task in Task.query.filter(Task.id.in_(flagged_ids)).all():
            if not task.has_conflict:
                task.has_conflict = True
                flagged += 1
                touched.add(task.project_id)
    if clear_stale:
        for task in Task.query.filter(Task.has_conflict.is_(True)).all():
            if task.id not in flagged_ids:
                task.has_conflict = False
                cleared += 1
                touched.add(task.project_id)
    db.session.commit()
    return flagged, cleared, touched


def check_task_conflicts(*, clear_stale: bool | None = None) -> dict:
    """
    Scan all tasks for schedule conflicts.

    Single-flight: a call made while another scan is running returns
    ``{"skipped": True}`` immediately.

    Raises:
        InfrastructureError: loading or flagging tasks failed.
    """
    if not _scan_lock.acquire(blocking=False):
        logger.warning("Task conflict scan already running — skipping")
        return {"skipped": True, "reason": "scan already running"}
    try:
        if clear_stale is None:
            clear_stale = current_app.config.get("CONFLICT_CLEAR_STALE_FLAGS", True)
        return _scan(clear_stale)
    finally:
        _scan_lock.release()


def _scan(clear_stale: bool) -> dict:
    try:
        tasks = Task.query.filter(
            Task.priority.in_(sorted(CONFLICT_PRIORITIES)),
            Task.start_date.isnot(None),
            Task.due_date.isnot(None),
        ).all()
        conflicts = find_conflicts(windows_from_tasks(tasks))
        flagged, cleared, touched = _flag_tasks(conflicts, clear_stale)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Task conflict scan failed while loading or flagging tasks")
        raise InfrastructureError("Task conflict scan failed") from exc

    for project_id in sorted(touched):
        cache_service.invalidate_views("tasks", project_id)

    results = {
        "tasks_scanned": len(tasks),
        "users_with_conflicts": len(conflicts),
        "tasks_flagged": flagged,
        "flags_cleared": cleared,
        "notifications_created": 0,
        "notification_failures": 0,
        "events_published": 0,
        "publish_failures": 0,
    }

    for user_id, task_ids in conflicts.items():
        try:
            NotificationService.create(
                recipient_id=user_id,
                message=conflict_message(len(task_ids)),
                type="ConflictDetected",
                link=CONFLICT_LINK,
            )
            results["notifications_created"] += 1
        except Exception:
            db.session.rollback()
            results["notification_failures"] += 1
            logger.exception("Conflict notification failed for user %s", user_id,
                             extra={"user_id": user_id})

        try:
            event_bus.publish(event_bus.CONFLICTS_CHANNEL, {
                "userId": user_id,
                "taskIds": task_ids,
                "message": CONFLICT_EVENT_MESSAGE,
            })
            results["events_published"] += 1
        except Exception:
            results["publish_failures"] += 1
            logger.exception("Conflict event publish failed for user %s", user_id,
                             extra={"user_id": user_id, "channel": event_bus.CONFLICTS_CHANNEL})

    logger.info("Task conflict scan: %s", results)
    return results


@register_job("task_conflict_scan", interval_minutes=30)
def scan_task_conflicts(app) -> dict:
    """Flag overlapping high/critical tasks per assignee and notify them."""
    return check_task_conflicts()
