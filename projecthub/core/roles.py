"""
Role vocabularies.

Three independent axes:
    ProjectRole       — per-project membership role, ordered Guest < ... < Manager
    SystemRole        — global role carried in the JWT ``roles`` claim
    LegacySystemRole  — coarse Admin/User flag stored on the user record

The only cross-axis mapping is LegacySystemRole.ADMIN → SystemRole.ADMIN.
"""

from enum import Enum


class ProjectRole(str, Enum):
    GUEST = "Guest"
    QA = "QA"
    DEVELOPER = "Developer"
    BA = "BA"
    MANAGER = "Manager"

    @property
    def rank(self) -> int:
        return _PROJECT_ROLE_ORDER.index(self)

    @classmethod
    def values(cls) -> list[str]:
        return [r.value for r in cls]


_PROJECT_ROLE_ORDER = (
    ProjectRole.GUEST,
    ProjectRole.QA,
    ProjectRole.DEVELOPER,
    ProjectRole.BA,
    ProjectRole.MANAGER,
)


class SystemRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    QA_LEAD = "qa_lead"
    TEAM_MEMBER = "team_member"
    GUEST = "guest"


class LegacySystemRole(str, Enum):
    ADMIN = "Admin"
    USER = "User"


def resolve_system_roles(roles, legacy_role=None) -> list[str]:
    """Return the effective global role names for a token.

    Unknown role strings are dropped. A legacy Admin flag adds ``admin``.
    """
    resolved = []
    for name in roles or []:
        try:
            value = SystemRole(name).value
        except ValueError:
            continue
        if value not in resolved:
            resolved.append(value)
    if legacy_role == LegacySystemRole.ADMIN.value and SystemRole.ADMIN.value not in resolved:
        resolved.insert(0, SystemRole.ADMIN.value)
    return resolved
