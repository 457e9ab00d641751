"""
ProjectHub
Identity domain model.

Models:
    - User: platform account with global roles and a legacy Admin/User flag

Users are deactivated (``is_active = False``), never deleted.
"""

from datetime import datetime, timezone

from projecthub.core.roles import LegacySystemRole, resolve_system_roles
from projecthub.models import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(200), default="")
    system_role = db.Column(db.String(20), default=LegacySystemRole.USER.value,
                            comment="Legacy coarse role: Admin | User")
    roles = db.Column(db.JSON, default=list,
                      comment="Global roles: admin, manager, qa_lead, team_member, guest")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    preferences = db.Column(db.JSON, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    memberships = db.relationship("ProjectMember", back_populates="user", lazy="dynamic")

    def effective_roles(self) -> list[str]:
        return resolve_system_roles(self.roles, self.system_role)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "system_role": self.system_role,
            "roles": self.effective_roles(),
            "is_active": self.is_active,
            "preferences": self.preferences or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
