"""
ProjectHub
Issue blueprint.

Endpoints:
    /api/v1/projects/<pid>/issues     GET, POST
    /api/v1/issues/<iid>              GET
    /api/v1/issues/<iid>/triage       PUT
    /api/v1/issues/<iid>/link-task    POST
"""

from flask import Blueprint, jsonify, request

from projecthub.blueprints import json_body, paginate_list
from projecthub.middleware.permission_required import current_principal, require_auth
from projecthub.services import issue_service
from projecthub.utils.errors import E, api_error

issue_bp = Blueprint("issues", __name__, url_prefix="/api/v1")


@issue_bp.route("/projects/<int:project_id>/issues", methods=["GET"])
@require_auth
def list_issues(project_id):
    items = issue_service.list_project_issues(
        current_principal(), project_id,
        status=request.args.get("status"),
        severity=request.args.get("severity"),
    )
    page, total = paginate_list(items)
    return jsonify({"items": page, "total": total})


@issue_bp.route("/projects/<int:project_id>/issues", methods=["POST"])
@require_auth
def create_issue(project_id):
    issue = issue_service.create_issue(current_principal(), project_id, json_body())
    return jsonify(issue.to_dict()), 201


@issue_bp.route("/issues/<int:issue_id>", methods=["GET"])
@require_auth
def get_issue(issue_id):
    return jsonify(issue_service.view_issue(current_principal(), issue_id).to_dict())


@issue_bp.route("/issues/<int:issue_id>/triage", methods=["PUT"])
@require_auth
def triage_issue(issue_id):
    issue = issue_service.get_issue(issue_id)
    issue = issue_service.triage_issue(issue, json_body(), current_principal())
    return jsonify(issue.to_dict())


@issue_bp.route("/issues/<int:issue_id>/link-task", methods=["POST"])
@require_auth
def link_task(issue_id):
    data = json_body()
    if data.get("task_id") is None:
        return api_error(E.VALIDATION_REQUIRED, "task_id is required")
    issue = issue_service.get_issue(issue_id)
    issue = issue_service.link_task(issue, data["task_id"], current_principal())
    return jsonify(issue.to_dict())
