"""
Issue triage state machine and SLA computation.

    new → triaged | in_progress | wontfix | duplicate   (exactly once)

SLA target = created_at + {critical: 4h, high: 24h, medium: 72h, low: 168h}.
"""

from datetime import datetime, timezone

import pytest

from projecthub.core.exceptions import InvalidStateError, PermissionDeniedError, ValidationError
from projecthub.models import db
from projecthub.models.issue import SLA_HOURS, Issue
from projecthub.models.notification import Notification
from projecthub.services import issue_service
from projecthub.utils.helpers import to_utc

CREATED = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def triager(make_user, principal):
    return principal(make_user(roles=["manager"]))


@pytest.fixture()
def project(make_project):
    return make_project()


class TestComputeSla:
    def test_sla_hours_table(self):
        assert SLA_HOURS == {"critical": 4, "high": 24, "medium": 72, "low": 168}

    def test_high_severity_example(self):
        target, breached = issue_service.compute_sla(
            CREATED, "high", datetime(2024, 1, 3, tzinfo=timezone.utc),
        )
        assert target == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert breached is True

    def test_within_window_not_breached(self):
        target, breached = issue_service.compute_sla(
            CREATED, "critical", datetime(2024, 1, 1, 3, 59, tzinfo=timezone.utc),
        )
        assert target == datetime(2024, 1, 1, 4, tzinfo=timezone.utc)
        assert breached is False

    def test_exactly_at_target_not_breached(self):
        _, breached = issue_service.compute_sla(
            CREATED, "medium", datetime(2024, 1, 4, tzinfo=timezone.utc),
        )
        assert breached is False

    def test_naive_created_at_treated_as_utc(self):
        target, _ = issue_service.compute_sla(datetime(2024, 1, 1), "low", CREATED)
        assert target == datetime(2024, 1, 8, tzinfo=timezone.utc)

    def test_unknown_severity(self):
        with pytest.raises(ValidationError):
            issue_service.compute_sla(CREATED, "blocker", CREATED)


class TestTriage:
    def test_sla_fixed_at_triage(self, project, make_issue, triager):
        issue = make_issue(project, severity="medium", created_at=CREATED)
        issue = issue_service.triage_issue(
            issue, {"status": "triaged", "severity": "high"}, triager,
            now=datetime(2024, 1, 3, tzinfo=timezone.utc),
        )
        assert issue.status == "triaged"
        assert issue.severity == "high"
        assert to_utc(issue.sla_target_at) == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert issue.sla_breached is True
        assert issue.triaged_at is not None

    def test_severity_defaults_to_current(self, project, make_issue, triager):
        issue = make_issue(project, severity="critical", created_at=CREATED)
        issue = issue_service.triage_issue(issue, {"status": "in_progress"}, triager, now=CREATED)
        assert issue.severity == "critical"
        assert to_utc(issue.sla_target_at) == datetime(2024, 1, 1, 4, tzinfo=timezone.utc)
        assert issue.sla_breached is False

    def test_retriage_fails_and_leaves_issue_unchanged(self, project, make_issue, triager):
        issue = make_issue(project, created_at=CREATED)
        issue = issue_service.triage_issue(issue, {"status": "triaged", "severity": "low"}, triager, now=CREATED)
        target = issue.sla_target_at

        with pytest.raises(InvalidStateError) as exc:
            issue_service.triage_issue(issue, {"status": "wontfix", "severity": "critical"}, triager)
        assert exc.value.code == "INVALID_STATUS"

        db.session.expire_all()
        stored = db.session.get(Issue, issue.id)
        assert stored.status == "triaged"
        assert stored.severity == "low"
        assert stored.sla_target_at == target

    @pytest.mark.parametrize("status", ["triaged", "in_progress", "done", "wontfix", "duplicate"])
    def test_non_new_issue_rejected_even_with_bad_payload(self, status, project, make_issue, triager):
        issue = make_issue(project, status=status)
        with pytest.raises(InvalidStateError):
            issue_service.triage_issue(issue, {"status": "bogus"}, triager)

    def test_invalid_target_status(self, project, make_issue, triager):
        issue = make_issue(project)
        with pytest.raises(ValidationError):
            issue_service.triage_issue(issue, {"status": "done"}, triager)
        assert issue.status == "new"

    def test_duplicate_requires_original(self, project, make_issue, triager):
        original = make_issue(project, title="Original")
        issue = make_issue(project, title="Copy")
        with pytest.raises(ValidationError):
            issue_service.triage_issue(issue, {"status": "duplicate"}, triager)
        issue = issue_service.triage_issue(issue, {"status": "duplicate", "duplicate_of": original.id}, triager)
        assert issue.duplicate_of_id == original.id
        assert issue.closed_at is not None

    def test_permission_required(self, project, make_issue, make_user, principal):
        issue = make_issue(project)
        for roles in (["qa_lead"], ["team_member"], ["guest"], []):
            with pytest.raises(PermissionDeniedError):
                issue_service.triage_issue(issue, {"status": "triaged"}, principal(make_user(roles=roles)))
        assert issue.status == "new"

    def test_admin_may_triage(self, project, make_issue, make_user, principal):
        admin = make_user(roles=[], system_role="Admin")
        issue = issue_service.triage_issue(make_issue(project), {"status": "triaged"}, principal(admin))
        assert issue.status == "triaged"

    def test_assignees_notified(self, project, make_issue, make_user, add_member, triager):
        dev = make_user()
        add_member(project, dev, "Developer")
        issue = issue_service.triage_issue(
            make_issue(project), {"status": "triaged", "assignees": [dev.id]}, triager,
        )
        assert issue.assignee_ids() == [dev.id]
        assert Notification.query.filter_by(recipient_id=dev.id).count() == 1

    def test_unknown_assignee_rejected_before_any_change(self, project, make_issue, triager):
        issue = make_issue(project, severity="medium")
        with pytest.raises(ValidationError) as exc:
            issue_service.triage_issue(issue, {"status": "triaged", "assignees": [9999]}, triager)
        assert exc.value.details == {"assignees": 9999}
        db.session.expire_all()
        stored = db.session.get(Issue, issue.id)
        assert stored.status == "new"
        assert stored.assignee_ids() == []
        assert stored.sla_target_at is None
        assert Notification.query.count() == 0

    def test_non_member_assignee_rejected(self, project, make_issue, make_user, triager):
        outsider = make_user()
        issue = make_issue(project)
        with pytest.raises(ValidationError):
            issue_service.triage_issue(issue, {"status": "triaged", "assignees": [outsider.id]}, triager)
        db.session.expire_all()
        assert db.session.get(Issue, issue.id).status == "new"


class TestCreateIssue:
    def test_critical_issue_notifies_managers(self, project, make_user, add_member, principal):
        manager = make_user()
        qa = make_user(roles=[])
        add_member(project, manager, "Manager")
        add_member(project, qa, "QA")
        issue = issue_service.create_issue(principal(qa), project.id,
                                           {"title": "Checkout down", "severity": "critical"})
        assert issue.status == "new"
        assert issue.reporter_id == qa.id
        notes = Notification.query.all()
        assert [n.recipient_id for n in notes] == [manager.id]

    def test_invalid_payload(self, project, make_user, add_member, principal):
        qa = make_user(roles=[])
        add_member(project, qa, "QA")
        with pytest.raises(ValidationError) as exc:
            issue_service.create_issue(principal(qa), project.id, {"severity": "huge"})
        assert set(exc.value.details) == {"title", "severity"}

    def test_assignees_must_be_members(self, project, make_user, add_member, principal):
        qa = make_user(roles=[])
        add_member(project, qa, "QA")
        with pytest.raises(ValidationError) as exc:
            issue_service.create_issue(principal(qa), project.id, {"title": "Login fails", "assignees": [9999]})
        assert exc.value.details == {"assignees": 9999}
        assert Issue.query.count() == 0

        issue = issue_service.create_issue(principal(qa), project.id, {"title": "Login fails", "assignees": [qa.id]})
        assert issue.assignee_ids() == [qa.id]

    def test_guest_without_global_right_denied(self, project, make_user, add_member, principal):
        guest = make_user(roles=["guest"])
        add_member(project, guest, "Guest")
        with pytest.raises(PermissionDeniedError):
            issue_service.create_issue(principal(guest), project.id, {"title": "x"})


class TestLinkTask:
    def test_link_and_already_linked(self, project, make_issue, make_task, triager):
        issue = make_issue(project)
        task = make_task(project)
        issue = issue_service.link_task(issue, task.id, triager)
        assert [t.id for t in issue.related_tasks] == [task.id]
        assert [i.id for i in task.related_issues] == [issue.id]

        with pytest.raises(InvalidStateError) as exc:
            issue_service.link_task(issue, task.id, triager)
        assert exc.value.code == "ALREADY_LINKED"

    def test_task_from_other_project_not_found(self, project, make_project, make_issue, make_task, triager):
        from projecthub.core.exceptions import NotFoundError

        issue = make_issue(project)
        foreign = make_task(make_project("Other"))
        with pytest.raises(NotFoundError):
            issue_service.link_task(issue, foreign.id, triager)
