"""
ProjectHub
Time tracking model.

Models:
    - TimeLog: hours a user booked against a task on a given day
"""

from datetime import datetime, timezone

from projecthub.models import db


class TimeLog(db.Model):
    __tablename__ = "time_logs"
    __table_args__ = (
        db.CheckConstraint("hours >= 0", name="ck_time_logs_hours_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    hours = db.Column(db.Float, nullable=False)
    description = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    task = db.relationship("Task")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "task_id": self.task_id,
            "task_title": self.task.title if self.task else None,
            "date": self.date.isoformat() if self.date else None,
            "hours": self.hours,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TimeLog {self.id}: user={self.user_id} task={self.task_id} {self.hours}h>"
