"""
ProjectHub
User administration blueprint (admin only).

Endpoints:
    /api/v1/users                GET      ?search=&is_active=&limit=&offset=
    /api/v1/users/<uid>          GET, PATCH {full_name, system_role, roles, is_active}
    /api/v1/users/<uid>          DELETE   soft-deactivates the account
"""

from flask import Blueprint, jsonify, request

from projecthub.blueprints import json_body, paginate_list
from projecthub.middleware.permission_required import current_principal, require_system_role
from projecthub.services import user_service
from projecthub.utils.errors import E, api_error

user_bp = Blueprint("users", __name__, url_prefix="/api/v1")


@user_bp.route("/users", methods=["GET"])
@require_system_role("admin")
def list_users():
    raw_active = request.args.get("is_active")
    if raw_active is not None and raw_active.lower() not in ("true", "false"):
        return api_error(E.VALIDATION_INVALID, "is_active must be true or false")
    is_active = None if raw_active is None else raw_active.lower() == "true"
    users = user_service.list_users(search=request.args.get("search"), is_active=is_active)
    page, total = paginate_list(users, default_limit=50, max_limit=200)
    return jsonify({"items": [u.to_dict() for u in page], "total": total})


@user_bp.route("/users/<int:user_id>", methods=["GET"])
@require_system_role("admin")
def get_user(user_id):
    return jsonify(user_service.get_user(user_id).to_dict())


@user_bp.route("/users/<int:user_id>", methods=["PATCH"])
@require_system_role("admin")
def update_user(user_id):
    user = user_service.update_user(current_principal(), user_id, json_body())
    return jsonify(user.to_dict())


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
@require_system_role("admin")
def deactivate_user(user_id):
    user = user_service.deactivate_user(current_principal(), user_id)
    return jsonify(user.to_dict())
