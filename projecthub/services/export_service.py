"""
Timesheet export jobs.

``start_timesheet_export`` records a job in the keyed TTL store
(``export:<job_id>``) and builds the workbook on a background thread
(inline when EXPORT_RUN_INLINE is set). Job records expire after
EXPORT_JOB_TTL seconds; an expired job reads as not found. Workbook files
older than the TTL are purged when a new export starts and by the hourly
``export_file_cleanup`` job.

Job record:
    {jobId, userId, status: processing|completed|failed, startTime,
     endTime, filePath, rows, totalHours, error}
"""

import logging
import os
import threading
import time
import uuid
from datetime import datetime, timezone

from flask import current_app
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from projecthub.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from projecthub.models import db
from projecthub.models.project import Project
from projecthub.models.timelog import TimeLog
from projecthub.services import cache_service
from projecthub.services.scheduler_service import register_job
from projecthub.utils.helpers import parse_date

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
TOTAL_FONT = Font(bold=True)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
HEADERS = ["Date", "Project", "Task", "Hours", "Description"]
COLUMN_WIDTHS = [12, 28, 40, 8, 60]


def _job_key(job_id):
    return f"export:{job_id}"


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _save_job(job: dict) -> None:
    cache_service.set_cached(_job_key(job["jobId"]), job,
                             ttl=current_app.config.get("EXPORT_JOB_TTL", 3600))


# ═══════════════════════════════════════════════════════════════════════════
#  Workbook
# ═══════════════════════════════════════════════════════════════════════════

def build_timesheet_workbook(user_id, start=None, end=None) -> tuple[Workbook, int, float]:
    """Build the timesheet workbook; returns (workbook, row_count, total_hours)."""
    q = TimeLog.query.filter_by(user_id=user_id)
    if start:
        q = q.filter(TimeLog.date >= start)
    if end:
        q = q.filter(TimeLog.date <= end)
    logs = q.order_by(TimeLog.date.asc(), TimeLog.id.asc()).all()

    project_names = {}
    wb = Workbook()
    ws = wb.active
    ws.title = "Timesheet"

    for col, header in enumerate(HEADERS, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center")

    total = 0.0
    for row, log in enumerate(logs, 2):
        task = log.task
        pid = task.project_id if task else None
        if pid is not None and pid not in project_names:
            project = db.session.get(Project, pid)
            project_names[pid] = project.name if project else ""
        values = [
            log.date,
            project_names.get(pid, ""),
            task.title if task else "",
            log.hours,
            log.description or "",
        ]
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row, column=col, value=value)
            cell.border = THIN_BORDER
        ws.cell(row=row, column=1).number_format = "yyyy-mm-dd"
        total += log.hours or 0

    total_row = len(logs) + 2
    ws.cell(row=total_row, column=3, value="Total").font = TOTAL_FONT
    ws.cell(row=total_row, column=4, value=round(total, 2)).font = TOTAL_FONT

    for idx, width in enumerate(COLUMN_WIDTHS, 1):
        ws.column_dimensions[get_column_letter(idx)].width = width
    ws.freeze_panes = "A2"
    return wb, len(logs), round(total, 2)


# ═══════════════════════════════════════════════════════════════════════════
#  Jobs
# ═══════════════════════════════════════════════════════════════════════════

def _complete_export(app, job: dict, start, end) -> dict:
    try:
        wb, rows, total = build_timesheet_workbook(job["userId"], start, end)
        export_dir = app.config["EXPORT_DIR"]
        os.makedirs(export_dir, exist_ok=True)
        path = os.path.join(export_dir, f"{job['jobId']}.xlsx")
        wb.save(path)
        job.update(status="completed", filePath=path, rows=rows, totalHours=total, endTime=_now_iso())
        logger.info("Timesheet export %s completed (%d rows)", job["jobId"], rows,
                    extra={"user_id": job["userId"]})
    except Exception as exc:
        job.update(status="failed", error=str(exc), endTime=_now_iso())
        logger.exception("Timesheet export %s failed", job["jobId"], extra={"user_id": job["userId"]})
    _save_job(job)
    return job


def _run_export(app, job: dict, start, end) -> None:
    with app.app_context():
        _complete_export(app, job, start, end)


def purge_expired_exports(export_dir=None, max_age=None, *, now=None) -> int:
    """Delete export workbooks older than *max_age* seconds; returns the count removed."""
    export_dir = export_dir or current_app.config["EXPORT_DIR"]
    max_age = current_app.config.get("EXPORT_JOB_TTL", 3600) if max_age is None else max_age
    now = time.time() if now is None else now
    if not os.path.isdir(export_dir):
        return 0

    removed = 0
    with os.scandir(export_dir) as entries:
        for entry in entries:
            if not (entry.name.startswith("export-") and entry.name.endswith(".xlsx")):
                continue
            try:
                if not entry.is_file() or now - entry.stat().st_mtime <= max_age:
                    continue
                os.remove(entry.path)
                removed += 1
            except FileNotFoundError:
                continue
            except OSError:
                logger.exception("Could not remove expired export %s", entry.path)
    if removed:
        logger.info("Purged %d expired export file(s) from %s", removed, export_dir)
    return removed


@register_job("export_file_cleanup", interval_minutes=60)
def cleanup_export_files(app) -> dict:
    """Remove workbooks whose job records have expired."""
    return {"deleted": purge_expired_exports()}


def start_timesheet_export(user_id, data: dict | None = None) -> dict:
    """Register an export job for *user_id* and start building it."""
    data = data or {}
    start = parse_date(data.get("start_date"))
    end = parse_date(data.get("end_date"))
    if data.get("start_date") and start is None:
        raise ValidationError("start_date must be a date (YYYY-MM-DD)")
    if data.get("end_date") and end is None:
        raise ValidationError("end_date must be a date (YYYY-MM-DD)")
    if start and end and end < start:
        raise ValidationError("end_date must not precede start_date")
    purge_expired_exports()

    job = {
        "jobId": f"export-{uuid.uuid4().hex}",
        "userId": user_id,
        "status": "processing",
        "startTime": _now_iso(),
        "endTime": None,
        "filePath": None,
        "rows": None,
        "totalHours": None,
        "error": None,
    }
    _save_job(job)

    app = current_app._get_current_object()
    if app.config.get("EXPORT_RUN_INLINE"):
        return _complete_export(app, dict(job), start, end)
    threading.Thread(
        target=_run_export, args=(app, dict(job), start, end),
        name=f"export-{job['jobId'][-8:]}", daemon=True,
    ).start()
    return job


def get_export_job(job_id, user_id) -> dict:
    """Return the job record; only its owner may read it."""
    job = cache_service.get_cached(_job_key(job_id))
    if job is None:
        raise NotFoundError("Export job", job_id)
    if job["userId"] != user_id:
        raise PermissionDeniedError(user_id, "read", "export job")
    return job
