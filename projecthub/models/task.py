"""
ProjectHub
Task domain model.

Models:
    - Task: unit of work inside a project (optionally inside a module)

Lifecycle:
    todo ⇄ in_progress ⇄ in_review ⇄ testing ⇄ done   (any → any)

    completed_date is set on entering ``done`` and cleared on leaving it,
    so ``completed_date is not None`` exactly when ``status == "done"``.
"""

from datetime import datetime, timezone

from projecthub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = ("todo", "in_progress", "in_review", "testing", "done")
TASK_PRIORITIES = ("low", "medium", "high", "critical")

# Only these priorities participate in schedule-conflict detection
CONFLICT_PRIORITIES = frozenset({"high", "critical"})

TASK_TRANSITIONS = {status: [s for s in TASK_STATUSES if s != status] for status in TASK_STATUSES}


def validate_task_transition(old_status, new_status):
    """Return True if Task status transition is valid (same-state writes included)."""
    return new_status == old_status or new_status in TASK_TRANSITIONS.get(old_status, [])


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    module_id = db.Column(db.Integer, db.ForeignKey("modules.id", ondelete="SET NULL"),
                          nullable=True, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), default="todo", nullable=False, index=True)
    priority = db.Column(db.String(20), default="medium", nullable=False)

    assignees = db.Column(db.JSON, default=list, comment="List of assigned user ids")
    reporter_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    start_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True, comment="Deadline")
    completed_date = db.Column(db.DateTime(timezone=True), nullable=True)

    has_conflict = db.Column(db.Boolean, default=False, nullable=False)
    estimated_hours = db.Column(db.Float, nullable=True)
    actual_hours = db.Column(db.Float, nullable=True)
    labels = db.Column(db.JSON, default=list)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def assignee_ids(self) -> list[int]:
        return [int(a) for a in (self.assignees or [])]

    def is_assigned_to(self, user_id) -> bool:
        return user_id is not None and int(user_id) in self.assignee_ids()

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "module_id": self.module_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assignees": self.assignee_ids(),
            "reporter_id": self.reporter_id,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_date": self.completed_date.isoformat() if self.completed_date else None,
            "has_conflict": self.has_conflict,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours,
            "labels": self.labels or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]} [{self.status}]>"
