"""
Project service — projects, membership management, modules.

Gates (ordinal, on the caller's project role):
    view project / modules      Guest
    list members                BA
    create / update module      BA
    delete module               Manager
    add / update / remove member Manager

Every project keeps at least one Manager.
"""

from __future__ import annotations

import logging

from projecthub.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from projecthub.core.roles import ProjectRole
from projecthub.models import db
from projecthub.models.auth import User
from projecthub.models.project import PROJECT_STATUSES, Module, Project, ProjectMember
from projecthub.services import cache_service
from projecthub.services.access import require_project_role
from projecthub.services.policies import is_admin
from projecthub.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


def get_project(project_id) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


def _parse_role(value) -> ProjectRole:
    try:
        return ProjectRole(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid role {value!r}", details={"role": ProjectRole.values()}) from exc


# ═══════════════════════════════════════════════════════════════════════════
#  Projects
# ═══════════════════════════════════════════════════════════════════════════

def create_project(principal, data: dict) -> Project:
    """Create a project; the creator becomes its Manager."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    status = data.get("status", "active")
    if status not in PROJECT_STATUSES:
        raise ValidationError(f"Invalid status {status!r}", details={"status": sorted(PROJECT_STATUSES)})

    project = Project(
        name=name,
        description=data.get("description", ""),
        status=status,
        owner_id=principal.user_id,
    )
    db.session.add(project)
    db.session.flush()
    db.session.add(ProjectMember(project_id=project.id, user_id=principal.user_id,
                                 role=ProjectRole.MANAGER.value))
    commit_or_raise("Project", "name", name)
    logger.info("Project %s created by user %s", project.id, principal.user_id,
                extra={"user_id": principal.user_id, "project_id": project.id})
    return project


def list_projects(principal) -> list[Project]:
    q = Project.query
    if not is_admin(principal):
        q = q.join(ProjectMember, ProjectMember.project_id == Project.id).filter(
            ProjectMember.user_id == principal.user_id,
        )
    return q.order_by(Project.created_at.desc(), Project.id.desc()).all()


def view_project(principal, project_id) -> Project:
    project = get_project(project_id)
    require_project_role(principal, project_id, ProjectRole.GUEST)
    return project


# ═══════════════════════════════════════════════════════════════════════════
#  Membership
# ═══════════════════════════════════════════════════════════════════════════

def list_members(principal, project_id) -> list[ProjectMember]:
    get_project(project_id)
    require_project_role(principal, project_id, ProjectRole.BA)
    return (
        ProjectMember.query.filter_by(project_id=project_id)
        .order_by(ProjectMember.joined_at.asc(), ProjectMember.id.asc())
        .all()
    )


def add_member(principal, project_id, data: dict) -> ProjectMember:
    """Add an existing, active user (by ``user_id`` or ``email``) to a project."""
    get_project(project_id)
    require_project_role(principal, project_id, ProjectRole.MANAGER)
    role = _parse_role(data.get("role", ProjectRole.GUEST.value))

    user = None
    if data.get("user_id") is not None:
        user = db.session.get(User, data["user_id"])
    elif data.get("email"):
        user = User.query.filter_by(email=data["email"].strip().lower()).first()
    else:
        raise ValidationError("user_id or email is required", details={"user_id": "required"})
    if user is None or not user.is_active:
        raise NotFoundError("User", data.get("user_id") or data.get("email"))

    if ProjectMember.query.filter_by(project_id=project_id, user_id=user.id).first():
        raise ConflictError("ProjectMember", "user_id", str(user.id))

    member = ProjectMember(project_id=project_id, user_id=user.id, role=role.value)
    db.session.add(member)
    commit_or_raise("ProjectMember", "user_id", str(user.id))
    logger.info("User %s added to project %s as %s", user.id, project_id, role.value,
                extra={"user_id": principal.user_id, "project_id": project_id})
    return member


def _get_member(project_id, member_id) -> ProjectMember:
    member = db.session.get(ProjectMember, member_id)
    if member is None or member.project_id != project_id:
        raise NotFoundError("ProjectMember", member_id)
    return member


def _ensure_other_manager(project_id, member: ProjectMember) -> None:
    if member.role != ProjectRole.MANAGER.value:
        return
    others = ProjectMember.query.filter(
        ProjectMember.project_id == project_id,
        ProjectMember.role == ProjectRole.MANAGER.value,
        ProjectMember.id != member.id,
    ).count()
    if others == 0:
        raise InvalidStateError("A project must keep at least one Manager", code="LAST_MANAGER")


def update_member_role(principal, project_id, member_id, data: dict) -> ProjectMember:
    get_project(project_id)
    require_project_role(principal, project_id, ProjectRole.MANAGER)
    member = _get_member(project_id, member_id)
    role = _parse_role(data.get("role"))
    if role != ProjectRole.MANAGER:
        _ensure_other_manager(project_id, member)
    member.role = role.value
    commit_or_raise("ProjectMember", "id", str(member_id))
    return member


def remove_member(principal, project_id, member_id) -> None:
    get_project(project_id)
    require_project_role(principal, project_id, ProjectRole.MANAGER)
    member = _get_member(project_id, member_id)
    _ensure_other_manager(project_id, member)
    db.session.delete(member)
    commit_or_raise("ProjectMember", "id", str(member_id))
    logger.info("Membership %s removed from project %s", member_id, project_id,
                extra={"user_id": principal.user_id, "project_id": project_id})


# ═══════════════════════════════════════════════════════════════════════════
#  Modules
# ═══════════════════════════════════════════════════════════════════════════

def list_modules(principal, project_id) -> list[Module]:
    get_project(project_id)
    require_project_role(principal, project_id, ProjectRole.GUEST)
    return Module.query.filter_by(project_id=project_id).order_by(Module.name.asc()).all()


def create_module(principal, project_id, data: dict) -> Module:
    get_project(project_id)
    require_project_role(principal, project_id, ProjectRole.BA)
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    module = Module(project_id=project_id, name=name, description=data.get("description", ""))
    db.session.add(module)
    commit_or_raise("Module", "name", name)
    return module


def _get_module(module_id) -> Module:
    module = db.session.get(Module, module_id)
    if module is None:
        raise NotFoundError("Module", module_id)
    return module


def update_module(principal, module_id, data: dict) -> Module:
    module = _get_module(module_id)
    require_project_role(principal, module.project_id, ProjectRole.BA)
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        module.name = name
    if "description" in data:
        module.description = data.get("description") or ""
    commit_or_raise("Module", "id", str(module_id))
    return module


def delete_module(principal, module_id) -> None:
    """Delete a module; its tasks and issues keep existing with ``module_id`` cleared."""
    module = _get_module(module_id)
    project_id = module.project_id
    require_project_role(principal, project_id, ProjectRole.MANAGER)
    db.session.delete(module)
    commit_or_raise("Module", "id", str(module_id))
    cache_service.invalidate_views("tasks", project_id)
    cache_service.invalidate_views("issues", project_id)
