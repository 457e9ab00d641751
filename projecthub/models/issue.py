"""
ProjectHub
Issue domain model — bug / incident tracker with SLA deadline tracking.

Models:
    - Issue:           reported problem, triaged once out of ``new``
    - issue_task_links: N:M association Issue ⇄ Task

Lifecycle:
    new → triaged | in_progress | wontfix | duplicate   (triage, exactly once)
    triaged → in_progress → in_review → qa_testing → done

SLA:
    sla_target_at = created_at + SLA_HOURS[severity], fixed at triage time.
    sla_breached  = triage time > sla_target_at.
"""

from datetime import datetime, timezone

from projecthub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ISSUE_TYPES = ("bug", "incident", "improvement", "request")
ISSUE_STATUSES = (
    "new", "triaged", "in_progress", "in_review",
    "qa_testing", "done", "wontfix", "duplicate",
)
ISSUE_SEVERITIES = ("critical", "high", "medium", "low")
ISSUE_PRIORITIES = ("p0", "p1", "p2", "p3")
ISSUE_ENVIRONMENTS = ("prod", "staging", "dev")

# Statuses a triage decision may move an issue into
TRIAGE_STATUSES = ("triaged", "in_progress", "wontfix", "duplicate")

SLA_HOURS = {
    "critical": 4,
    "high": 24,
    "medium": 72,
    "low": 168,
}


issue_task_links = db.Table(
    "issue_task_links",
    db.Column("issue_id", db.Integer, db.ForeignKey("issues.id", ondelete="CASCADE"), primary_key=True),
    db.Column("task_id", db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
)


class Issue(db.Model):
    __tablename__ = "issues"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    module_id = db.Column(db.Integer, db.ForeignKey("modules.id", ondelete="SET NULL"), nullable=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    type = db.Column(db.String(20), default="bug")
    status = db.Column(db.String(20), default="new", nullable=False, index=True)
    severity = db.Column(db.String(20), default="medium", nullable=False)
    priority = db.Column(db.String(5), default="p2")
    environment = db.Column(db.String(20), nullable=True)

    assignees = db.Column(db.JSON, default=list, comment="List of assigned user ids")
    reporter_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    duplicate_of_id = db.Column(db.Integer, db.ForeignKey("issues.id", ondelete="SET NULL"), nullable=True)
    triage_notes = db.Column(db.Text, nullable=True)

    # SLA tracking, populated at triage
    sla_target_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sla_breached = db.Column(db.Boolean, default=False, nullable=False)
    triaged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    related_tasks = db.relationship("Task", secondary=issue_task_links, lazy="select",
                                    backref=db.backref("related_issues", lazy="select"))

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
            "type": self.type,
            "status": self.status,
            "severity": self.severity,
            "priority": self.priority,
            "environment": self.environment,
            "assignees": self.assignee_ids(),
            "reporter_id": self.reporter_id,
            "duplicate_of_id": self.duplicate_of_id,
            "triage_notes": self.triage_notes,
            "related_task_ids": sorted(t.id for t in self.related_tasks),
            "sla": {
                "target_at": self.sla_target_at.isoformat() if self.sla_target_at else None,
                "breached": bool(self.sla_breached),
            },
            "triaged_at": self.triaged_at.isoformat() if self.triaged_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Issue {self.id}: {self.title[:40]} [{self.status}/{self.severity}]>"
