"""
Task status state machine.

    todo ⇄ in_progress ⇄ in_review ⇄ testing ⇄ done   (any → any)

completed_date is set exactly when the task is done.
"""

from datetime import datetime, timezone

import pytest

from projecthub.core.exceptions import PermissionDeniedError, ValidationError
from projecthub.models import db
from projecthub.models.notification import Notification
from projecthub.models.task import TASK_STATUSES, Task
from projecthub.services import task_service

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def setup(make_user, make_project, add_member, make_task, principal):
    dev = make_user(roles=[])
    project = make_project()
    add_member(project, dev, "Developer")
    task = make_task(project, assignees=[dev])
    return {"dev": dev, "project": project, "task": task, "principal": principal(dev)}


class TestCompletedDate:
    def test_entering_done_sets_completed_date(self, setup):
        task = task_service.update_task_status(setup["task"], "done", setup["principal"], now=T0)
        assert task.status == "done"
        assert task.completed_date is not None

    def test_done_to_done_keeps_original_date(self, setup):
        task = task_service.update_task_status(setup["task"], "done", setup["principal"], now=T0)
        first = task.completed_date
        task = task_service.update_task_status(task, "done", setup["principal"], now=T1)
        assert task.completed_date == first

    def test_leaving_done_clears_completed_date(self, setup):
        task = task_service.update_task_status(setup["task"], "done", setup["principal"], now=T0)
        task = task_service.update_task_status(task, "in_progress", setup["principal"], now=T1)
        assert task.status == "in_progress"
        assert task.completed_date is None

    def test_non_done_moves_leave_date_unset(self, setup):
        task = setup["task"]
        for status in ("in_progress", "in_review", "testing", "todo"):
            task = task_service.update_task_status(task, status, setup["principal"])
            assert task.completed_date is None

    @pytest.mark.parametrize("start", TASK_STATUSES)
    @pytest.mark.parametrize("target", TASK_STATUSES)
    def test_invariant_holds_for_every_transition(self, start, target, make_user, make_project,
                                                 add_member, make_task, principal):
        ba = make_user(roles=[])
        project = make_project()
        add_member(project, ba, "BA")
        task = make_task(project, status=start,
                         completed_date=T0 if start == "done" else None)
        task = task_service.update_task_status(task, target, principal(ba), now=T1)
        assert task.status == target
        assert (task.completed_date is not None) == (target == "done")

    def test_apply_status_rejects_unknown_status(self, setup):
        with pytest.raises(ValidationError):
            task_service.apply_status(setup["task"], "archived", T0)


class TestStatusPermissions:
    def test_denied_caller_leaves_task_unchanged(self, setup, make_user, add_member, principal):
        other = make_user(roles=[])
        add_member(setup["project"], other, "Developer")
        task_id = setup["task"].id

        with pytest.raises(PermissionDeniedError):
            task_service.update_task_status(setup["task"], "done", principal(other))

        db.session.expire_all()
        stored = db.session.get(Task, task_id)
        assert stored.status == "todo"
        assert stored.completed_date is None

    def test_reporter_may_update(self, setup, make_user, add_member, make_task, principal):
        qa = make_user(roles=[])
        add_member(setup["project"], qa, "QA")
        task = make_task(setup["project"], reporter=qa)
        task = task_service.update_task_status(task, "testing", principal(qa))
        assert task.status == "testing"

    def test_global_team_member_assignee_may_update(self, make_user, make_project, make_task, principal):
        user = make_user(roles=["team_member"])
        project = make_project()
        task = make_task(project, assignees=[user])
        task = task_service.update_task_status(task, "in_review", principal(user))
        assert task.status == "in_review"


class TestStatusNotifications:
    def test_other_assignees_notified(self, setup, make_user, add_member, make_task, principal):
        peer = make_user(roles=[])
        add_member(setup["project"], peer, "Developer")
        task = make_task(setup["project"], assignees=[setup["dev"], peer])

        task_service.update_task_status(task, "in_progress", setup["principal"])

        notes = Notification.query.filter_by(type="StatusUpdate").all()
        assert [n.recipient_id for n in notes] == [peer.id]
        assert "todo" in notes[0].message and "in_progress" in notes[0].message

    def test_same_status_write_sends_nothing(self, setup):
        task_service.update_task_status(setup["task"], "todo", setup["principal"])
        assert Notification.query.count() == 0


class TestCreateTask:
    def test_developer_creates_and_assignees_notified(self, setup, make_user, add_member):
        peer = make_user(roles=[])
        add_member(setup["project"], peer, "QA")
        task = task_service.create_task(setup["principal"], setup["project"].id, {
            "title": "Wire up login",
            "priority": "high",
            "assignees": [peer.id, setup["dev"].id],
            "start_date": "2024-01-01",
            "due_date": "2024-01-05",
        })
        assert task.reporter_id == setup["dev"].id
        assert task.assignee_ids() == [peer.id, setup["dev"].id]
        notes = Notification.query.filter_by(type="TaskAssigned").all()
        assert [n.recipient_id for n in notes] == [peer.id]

    def test_qa_cannot_create(self, setup, make_user, add_member, principal):
        qa = make_user(roles=[])
        add_member(setup["project"], qa, "QA")
        with pytest.raises(PermissionDeniedError):
            task_service.create_task(principal(qa), setup["project"].id, {"title": "x"})

    def test_assignee_must_be_member(self, setup, make_user):
        outsider = make_user()
        with pytest.raises(ValidationError):
            task_service.create_task(setup["principal"], setup["project"].id,
                                     {"title": "x", "assignees": [outsider.id]})

    def test_due_before_start_rejected(self, setup):
        with pytest.raises(ValidationError):
            task_service.create_task(setup["principal"], setup["project"].id, {
                "title": "x", "start_date": "2024-02-01", "due_date": "2024-01-01",
            })

    def test_created_done_has_completed_date(self, setup):
        task = task_service.create_task(setup["principal"], setup["project"].id,
                                        {"title": "Already done", "status": "done"})
        assert task.completed_date is not None
