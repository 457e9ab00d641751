"""
ProjectHub
Reports blueprint.

Endpoints:
    /api/v1/reports/project-summary/<pid>   GET   (project Guest+)
    /api/v1/reports/user-summary            GET   (caller's own)
"""

from flask import Blueprint, jsonify

from projecthub.middleware.permission_required import current_principal, require_auth
from projecthub.services import report_service

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1/reports")


@report_bp.route("/project-summary/<int:project_id>", methods=["GET"])
@require_auth
def project_summary(project_id):
    return jsonify(report_service.project_summary(current_principal(), project_id))


@report_bp.route("/user-summary", methods=["GET"])
@require_auth
def user_summary():
    return jsonify(report_service.user_summary(current_principal()))
