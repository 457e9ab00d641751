"""
ProjectHub
Scheduler Service.

Lightweight interval scheduler for background jobs.

Architecture:
    - register_job:      decorator adding a job function to the registry
    - SchedulerService:  registration, persistence and execution
    - Jobs persist run history in the ScheduledJob model
    - A daemon thread ticks registered jobs on their interval when
      SCHEDULER_ENABLED is set; otherwise jobs run via the manual trigger API
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import Callable

from flask import Flask, current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from projecthub.models import db
from projecthub.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}
_job_intervals: dict[str, int] = {}

DEFAULT_INTERVAL_MINUTES = 24 * 60
TICK_SECONDS = 30


def register_job(name: str, *, interval_minutes: int = DEFAULT_INTERVAL_MINUTES):
    """Decorator to register a job function.

    Usage:
        @register_job("task_conflict_scan", interval_minutes=30)
        def scan(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        _job_intervals[name] = interval_minutes
        return fn
    return decorator


class SchedulerService:
    """
    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _thread: threading.Thread | None = None
    _stop: threading.Event | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))
        if app.config.get("SCHEDULER_ENABLED"):
            cls.start()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job that lacks one.

        Existing rows pick up interval changes made in code.
        """
        created = []
        changed = False
        for name, fn in _job_registry.items():
            interval = _job_intervals.get(name, DEFAULT_INTERVAL_MINUTES)
            record = ScheduledJob.query.filter_by(job_name=name).first()
            if record is not None:
                if record.interval_minutes != interval:
                    record.interval_minutes = interval
                    changed = True
                continue
            record = ScheduledJob(
                job_name=name,
                description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                interval_minutes=interval,
                is_enabled=True,
            )
            db.session.add(record)
            created.append(record)
        if created or changed:
            db.session.commit()
        if created:
            logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def _job_context(cls):
        """Reuse the caller's app context for this app, else push a new one."""
        if has_app_context() and current_app._get_current_object() is cls._app:
            return nullcontext()
        return cls._app.app_context()

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}
        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        with cls._job_context():
            try:
                result = fn(cls._app)
                if isinstance(result, dict) and result.get("skipped"):
                    status = "skipped"
            except Exception as exc:
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

            duration_ms = int((time.monotonic() - start) * 1000)

            try:
                cls.ensure_jobs_registered()
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                job_record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("Failed to update job record for %s", job_name)

        logger.info("Job %s finished: %s in %dms", job_name, status, duration_ms,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "interval_minutes": _job_intervals.get(name),
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job for the interval runner."""
        if job_name not in _job_registry:
            return None
        cls.ensure_jobs_registered()
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        job_record.is_enabled = enabled
        db.session.commit()
        return job_record.to_dict()

    # ── Interval runner ───────────────────────────────────────────────────

    @classmethod
    def due_jobs(cls, now: datetime | None = None) -> list[str]:
        """Names of enabled jobs whose interval has elapsed since their last run."""
        now = now or datetime.now(timezone.utc)
        cls.ensure_jobs_registered()
        due = []
        for name in _job_registry:
            record = ScheduledJob.query.filter_by(job_name=name).first()
            if record.is_due(now):
                due.append(name)
        return due

    @classmethod
    def tick(cls) -> list[dict]:
        with cls._app.app_context():
            names = cls.due_jobs()
        return [cls.run_job(name) for name in names]

    @classmethod
    def start(cls) -> None:
        if cls._thread is not None and cls._thread.is_alive():
            return
        cls._stop = threading.Event()

        def _loop():
            while not cls._stop.is_set():
                try:
                    cls.tick()
                except Exception:
                    logger.exception("Scheduler tick failed")
                cls._stop.wait(TICK_SECONDS)

        cls._thread = threading.Thread(target=_loop, name="projecthub-scheduler", daemon=True)
        cls._thread.start()
        logger.info("Scheduler thread started")
