"""
Shared pytest fixtures for the ProjectHub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup + cache reset (autouse)
    - client: Flask test client (function-scoped)
    - make_user / make_project / add_member / make_task / make_issue:
      ORM factories that bypass the API to set arbitrary starting states
    - auth_headers: Bearer token headers for a user
"""

from datetime import date

import pytest

from projecthub import create_app
from projecthub.core.roles import ProjectRole
from projecthub.models import db as _db
from projecthub.models.auth import User
from projecthub.models.issue import Issue
from projecthub.models.project import Project, ProjectMember
from projecthub.models.task import Task
from projecthub.services import cache_service
from projecthub.services.jwt_service import token_for_user
from projecthub.services.policies import Principal


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["EXPORT_DIR"] = str(tmp_path_factory.mktemp("exports"))
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        cache_service.reset_backend()
        yield
        cache_service.reset_backend()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── ORM factories ────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    counter = {"n": 0}

    def _make(email=None, roles=None, system_role="User", is_active=True):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            full_name=f"User {counter['n']}",
            roles=["team_member"] if roles is None else list(roles),
            system_role=system_role,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_project():
    def _make(name="Test Project", owner=None):
        project = Project(name=name, owner_id=owner.id if owner else None)
        _db.session.add(project)
        _db.session.commit()
        return project
    return _make


@pytest.fixture()
def add_member():
    def _add(project, user, role=ProjectRole.DEVELOPER):
        member = ProjectMember(project_id=project.id, user_id=user.id, role=ProjectRole(role).value)
        _db.session.add(member)
        _db.session.commit()
        return member
    return _add


@pytest.fixture()
def make_task():
    def _make(project, title="Task", status="todo", priority="medium", assignees=None,
              reporter=None, start=None, due=None, **extra):
        task = Task(
            project_id=project.id,
            title=title,
            status=status,
            priority=priority,
            assignees=[u.id if hasattr(u, "id") else u for u in (assignees or [])],
            reporter_id=reporter.id if reporter else None,
            start_date=date.fromisoformat(start) if isinstance(start, str) else start,
            due_date=date.fromisoformat(due) if isinstance(due, str) else due,
            **extra,
        )
        _db.session.add(task)
        _db.session.commit()
        return task
    return _make


@pytest.fixture()
def make_issue():
    def _make(project, title="Issue", status="new", severity="medium", reporter=None, **extra):
        issue = Issue(
            project_id=project.id,
            title=title,
            status=status,
            severity=severity,
            reporter_id=reporter.id if reporter else None,
            **extra,
        )
        _db.session.add(issue)
        _db.session.commit()
        return issue
    return _make


# ── Auth helpers ─────────────────────────────────────────────────────────


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}
    return _headers


def principal_for(user) -> Principal:
    return Principal(user_id=user.id, email=user.email, roles=tuple(user.effective_roles()))


@pytest.fixture()
def principal():
    return principal_for
