"""
ProjectHub
Task blueprint.

Endpoints:
    /api/v1/projects/<pid>/tasks     GET, POST
    /api/v1/tasks/my-tasks           GET
    /api/v1/tasks/<tid>              GET
    /api/v1/tasks/<tid>/status       PUT
"""

from flask import Blueprint, jsonify, request

from projecthub.blueprints import json_body, paginate_list
from projecthub.middleware.permission_required import current_principal, require_auth
from projecthub.services import task_service
from projecthub.utils.errors import E, api_error

task_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")


@task_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
@require_auth
def list_tasks(project_id):
    filters = task_service.parse_task_filters(request.args)
    items = task_service.list_project_tasks(current_principal(), project_id, **filters)
    page, total = paginate_list(items)
    return jsonify({"items": page, "total": total})


@task_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
@require_auth
def create_task(project_id):
    task = task_service.create_task(current_principal(), project_id, json_body())
    return jsonify(task.to_dict()), 201


@task_bp.route("/tasks/my-tasks", methods=["GET"])
@require_auth
def my_tasks():
    filters = task_service.parse_task_filters(request.args)
    tasks = task_service.list_my_tasks(current_principal(), status=filters["status"])
    return jsonify({"items": [t.to_dict() for t in tasks], "total": len(tasks)})


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
@require_auth
def get_task(task_id):
    task = task_service.view_task(current_principal(), task_id)
    return jsonify(task.to_dict())


@task_bp.route("/tasks/<int:task_id>/status", methods=["PUT"])
@require_auth
def update_status(task_id):
    data = json_body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    task = task_service.get_task(task_id)
    task = task_service.update_task_status(task, data["status"], current_principal())
    return jsonify(task.to_dict())
