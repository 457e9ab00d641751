"""
ProjectHub
Background job bookkeeping.

Models:
    - ScheduledJob: one row per registered job (``task_conflict_scan``,
      ``export_file_cleanup``): its interval, whether the interval runner
      may start it, and the outcome of its runs.

A run ends as success, skipped (the conflict scan found another scan in
flight) or failed. Skips are counted apart from failures.
"""

from datetime import datetime, timedelta, timezone

from projecthub.models import db
from projecthub.utils.helpers import to_utc


class ScheduledJob(db.Model):
    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), default="")
    interval_minutes = db.Column(db.Integer, nullable=False)
    is_enabled = db.Column(db.Boolean, default=True, nullable=False)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True)
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True)
    last_success_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_error = db.Column(db.Text, nullable=True)
    run_count = db.Column(db.Integer, default=0)
    failure_count = db.Column(db.Integer, default=0)
    skip_count = db.Column(db.Integer, default=0)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> str:
        return "active" if self.is_enabled else "paused"

    def is_due(self, now: datetime) -> bool:
        """Enabled and never run, or the interval has elapsed since the last run."""
        if not self.is_enabled:
            return False
        if self.last_run_at is None:
            return True
        return to_utc(now) - to_utc(self.last_run_at) >= timedelta(minutes=self.interval_minutes)

    def record_run(self, *, status, duration_ms=0, result=None, error=None, now=None):
        now = now or datetime.now(timezone.utc)
        self.last_run_at = now
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == "success":
            self.last_success_at = now
            self.last_error = None
        elif status == "skipped":
            self.skip_count = (self.skip_count or 0) + 1
        elif status == "failed":
            self.failure_count = (self.failure_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "id": self.id,
            "job_name": self.job_name,
            "description": self.description,
            "interval_minutes": self.interval_minutes,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_run_status": self.last_run_status,
            "last_run_duration_ms": self.last_run_duration_ms,
            "last_run_result": self.last_run_result,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_error": self.last_error,
            "run_count": self.run_count,
            "failure_count": self.failure_count,
            "skip_count": self.skip_count,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} [{self.status}]>"
