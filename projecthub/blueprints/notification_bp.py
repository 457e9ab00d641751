"""
ProjectHub
Notification & Scheduler blueprint.

Endpoints:
    NOTIF     /api/v1/notifications                    GET
              /api/v1/notifications/unread-count       GET
              /api/v1/notifications/<nid>              PATCH   {is_read}
              /api/v1/notifications/mark-all-read      POST

    SCHEDULER /api/v1/scheduler/jobs                   GET     (admin)
              /api/v1/scheduler/jobs/<name>/run        POST    (admin)
              /api/v1/scheduler/jobs/<name>/toggle     PATCH   (admin)
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from projecthub.blueprints import json_body
from projecthub.middleware.permission_required import (
    current_principal,
    require_auth,
    require_system_role,
)
from projecthub.services.notification import NotificationService
from projecthub.services.scheduler_service import SchedulerService
from projecthub.utils.errors import E, api_error

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  Notifications
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
@require_auth
def list_notifications():
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    try:
        limit = min(int(request.args.get("limit", 50)), 200)
        offset = max(int(request.args.get("offset", 0)), 0)
    except ValueError:
        return api_error(E.VALIDATION_INVALID, "limit and offset must be integers")
    user_id = current_principal().user_id
    items, total = NotificationService.list_for_recipient(
        user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(user_id),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_auth
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_principal().user_id)})


@notification_bp.route("/notifications/<int:notification_id>", methods=["PATCH"])
@require_auth
def update_notification(notification_id):
    data = json_body()
    is_read = data.get("is_read", True)
    if not isinstance(is_read, bool):
        return api_error(E.VALIDATION_INVALID, "is_read must be a boolean")
    notif = NotificationService.set_read(notification_id, current_principal().user_id, is_read)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/mark-all-read", methods=["POST"])
@require_auth
def mark_all_read():
    count = NotificationService.mark_all_read(current_principal().user_id)
    return jsonify({"marked_read": count})


# ═══════════════════════════════════════════════════════════════════════════
#  Scheduler
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/scheduler/jobs", methods=["GET"])
@require_system_role("admin")
def list_scheduled_jobs():
    return jsonify({"items": SchedulerService.list_jobs()})


@notification_bp.route("/scheduler/jobs/<job_name>/run", methods=["POST"])
@require_system_role("admin")
def run_job(job_name):
    result = SchedulerService.run_job(job_name)
    if result["status"] == "error":
        return api_error(E.NOT_FOUND, result["error"])
    status = 500 if result["status"] == "failed" else 200
    return jsonify(result), status


@notification_bp.route("/scheduler/jobs/<job_name>/toggle", methods=["PATCH"])
@require_system_role("admin")
def toggle_job(job_name):
    data = json_body()
    enabled = data.get("enabled")
    if not isinstance(enabled, bool):
        return api_error(E.VALIDATION_REQUIRED, "enabled (boolean) is required")
    record = SchedulerService.toggle_job(job_name, enabled)
    if record is None:
        return api_error(E.NOT_FOUND, f"Unknown job: {job_name}")
    return jsonify(record)
