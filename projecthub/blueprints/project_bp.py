"""
ProjectHub
Project blueprint — projects, membership, modules.

Endpoints:
    PROJECTS  /api/v1/projects                              GET, POST
              /api/v1/projects/<pid>                        GET
              /api/v1/projects/<pid>/permissions            GET

    MEMBERS   /api/v1/projects/<pid>/members                GET, POST
              /api/v1/projects/<pid>/members/<mid>          PATCH, DELETE

    MODULES   /api/v1/projects/<pid>/modules                GET, POST
              /api/v1/modules/<mid>                         PUT, DELETE
"""

from flask import Blueprint, jsonify

from projecthub.blueprints import json_body
from projecthub.middleware.permission_required import current_principal, require_auth
from projecthub.services import project_service
from projecthub.services.permission import get_project_permissions

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  PROJECTS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["GET"])
@require_auth
def list_projects():
    projects = project_service.list_projects(current_principal())
    return jsonify({"items": [p.to_dict() for p in projects], "total": len(projects)})


@project_bp.route("/projects", methods=["POST"])
@require_auth
def create_project():
    project = project_service.create_project(current_principal(), json_body())
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
@require_auth
def get_project(project_id):
    project = project_service.view_project(current_principal(), project_id)
    return jsonify(project.to_dict())


@project_bp.route("/projects/<int:project_id>/permissions", methods=["GET"])
@require_auth
def my_permissions(project_id):
    project_service.get_project(project_id)
    return jsonify(get_project_permissions(current_principal().user_id, project_id))


# ═══════════════════════════════════════════════════════════════════════════
#  MEMBERS
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/members", methods=["GET"])
@require_auth
def list_members(project_id):
    members = project_service.list_members(current_principal(), project_id)
    return jsonify({"items": [m.to_dict() for m in members], "total": len(members)})


@project_bp.route("/projects/<int:project_id>/members", methods=["POST"])
@require_auth
def add_member(project_id):
    member = project_service.add_member(current_principal(), project_id, json_body())
    return jsonify(member.to_dict()), 201


@project_bp.route("/projects/<int:project_id>/members/<int:member_id>", methods=["PATCH"])
@require_auth
def update_member(project_id, member_id):
    member = project_service.update_member_role(current_principal(), project_id, member_id, json_body())
    return jsonify(member.to_dict())


@project_bp.route("/projects/<int:project_id>/members/<int:member_id>", methods=["DELETE"])
@require_auth
def remove_member(project_id, member_id):
    project_service.remove_member(current_principal(), project_id, member_id)
    return jsonify({"deleted": True, "id": member_id})


# ═══════════════════════════════════════════════════════════════════════════
#  MODULES
# ═══════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/modules", methods=["GET"])
@require_auth
def list_modules(project_id):
    modules = project_service.list_modules(current_principal(), project_id)
    return jsonify({"items": [m.to_dict() for m in modules], "total": len(modules)})


@project_bp.route("/projects/<int:project_id>/modules", methods=["POST"])
@require_auth
def create_module(project_id):
    module = project_service.create_module(current_principal(), project_id, json_body())
    return jsonify(module.to_dict()), 201


@project_bp.route("/modules/<int:module_id>", methods=["PUT"])
@require_auth
def update_module(module_id):
    module = project_service.update_module(current_principal(), module_id, json_body())
    return jsonify(module.to_dict())


@project_bp.route("/modules/<int:module_id>", methods=["DELETE"])
@require_auth
def delete_module(module_id):
    project_service.delete_module(current_principal(), module_id)
    return jsonify({"deleted": True, "id": module_id})
