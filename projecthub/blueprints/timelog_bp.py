"""
ProjectHub
Time log & timesheet export blueprints.

Endpoints:
    TIMELOGS  /api/v1/timelogs                              GET, POST
    EXPORT    /api/v1/export/timesheet                      POST   → {jobId}
              /api/v1/export/timesheet/<job_id>             GET    (owner only)
              /api/v1/export/timesheet/<job_id>/download    GET    (owner, completed)
"""

import os

from flask import Blueprint, jsonify, send_file

from projecthub.blueprints import json_body, paginate_list
from projecthub.middleware.permission_required import current_principal, require_auth
from projecthub.services import export_service, timelog_service
from projecthub.utils.errors import E, api_error

timelog_bp = Blueprint("timelogs", __name__, url_prefix="/api/v1")
export_bp = Blueprint("export", __name__, url_prefix="/api/v1/export")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@timelog_bp.route("/timelogs", methods=["GET"])
@require_auth
def list_timelogs():
    logs = timelog_service.list_time_logs(current_principal().user_id)
    page, total = paginate_list(logs)
    return jsonify({
        "items": [t.to_dict() for t in page],
        "total": total,
        "total_hours": round(sum(t.hours for t in logs), 2),
    })


@timelog_bp.route("/timelogs", methods=["POST"])
@require_auth
def create_timelog():
    entry = timelog_service.log_time(current_principal(), json_body())
    return jsonify(entry.to_dict()), 201


# ═══════════════════════════════════════════════════════════════════════════
#  Timesheet export
# ═══════════════════════════════════════════════════════════════════════════

@export_bp.route("/timesheet", methods=["POST"])
@require_auth
def start_export():
    job = export_service.start_timesheet_export(current_principal().user_id, json_body())
    return jsonify({
        "jobId": job["jobId"],
        "status": job["status"],
        "message": "Export job started. Please check back later for the result.",
    }), 202


@export_bp.route("/timesheet/<job_id>", methods=["GET"])
@require_auth
def export_status(job_id):
    job = export_service.get_export_job(job_id, current_principal().user_id)
    body = dict(job)
    body.pop("filePath", None)
    body["downloadReady"] = job["status"] == "completed"
    return jsonify(body)


@export_bp.route("/timesheet/<job_id>/download", methods=["GET"])
@require_auth
def export_download(job_id):
    job = export_service.get_export_job(job_id, current_principal().user_id)
    if job["status"] != "completed" or not job.get("filePath") or not os.path.exists(job["filePath"]):
        return api_error(E.NOT_FOUND, "Export file is not available")
    return send_file(job["filePath"], mimetype=XLSX_MIMETYPE, as_attachment=True,
                     download_name="timesheet.xlsx")
