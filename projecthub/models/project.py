"""
ProjectHub
Project domain models.

Models:
    - Project:        top-level container for modules, tasks and issues
    - Module:         functional area within a project
    - ProjectMember:  user ↔ project membership carrying a ProjectRole

Architecture:
    Project ──1:N──▶ Module
    Project ──1:N──▶ ProjectMember ──N:1──▶ User
    Project ──1:N──▶ Task / Issue
"""

from datetime import datetime, timezone

from projecthub.core.roles import ProjectRole
from projecthub.models import db


# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUSES = {"active", "on_hold", "completed", "archived"}


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), default="active")
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    members = db.relationship("ProjectMember", back_populates="project",
                              cascade="all, delete-orphan", lazy="dynamic")
    modules = db.relationship("Module", back_populates="project",
                              cascade="all, delete-orphan", lazy="dynamic")

    def manager_ids(self) -> list[int]:
        return [
            m.user_id for m in self.members.filter_by(role=ProjectRole.MANAGER.value)
        ]

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "owner_id": self.owner_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Module(db.Model):
    __tablename__ = "modules"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project", back_populates="modules")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Module {self.id}: {self.name}>"


class ProjectMember(db.Model):
    """One membership per (project, user); the role decides project-level access."""

    __tablename__ = "project_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=ProjectRole.GUEST.value)
    joined_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project", back_populates="members")
    user = db.relationship("User", back_populates="memberships")

    @property
    def project_role(self) -> ProjectRole:
        return ProjectRole(self.role)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "email": self.user.email if self.user else None,
            "full_name": self.user.full_name if self.user else None,
            "role": self.role,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }

    def __repr__(self):
        return f"<ProjectMember project={self.project_id} user={self.user_id} [{self.role}]>"
