"""
Task schedule-conflict detection: pure sweep, flagging, notifications,
event publishing and per-user failure isolation.
"""

from datetime import date, datetime, timedelta, timezone
from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError

from projecthub.core.exceptions import InfrastructureError
from projecthub.models import db
from projecthub.models.notification import Notification
from projecthub.models.scheduling import ScheduledJob
from projecthub.models.task import Task
from projecthub.services import conflict_detector, event_bus, task_service
from projecthub.services.conflict_detector import (
    TaskWindow,
    check_task_conflicts,
    conflict_message,
    find_conflicts,
)
from projecthub.services.notification import NotificationService
from projecthub.services.scheduler_service import SchedulerService


def _w(task_id, start, due, priority="high", assignees=(1,)):
    return TaskWindow(task_id, tuple(assignees), priority, date.fromisoformat(start), date.fromisoformat(due))


class TestFindConflicts:
    def test_overlap_example(self):
        windows = [
            _w(1, "2024-03-01", "2024-03-10"),
            _w(2, "2024-03-05", "2024-03-15"),
            _w(3, "2024-04-01", "2024-04-05"),
        ]
        assert find_conflicts(windows) == {1: [1, 2]}

    def test_inclusive_bounds(self):
        windows = [_w(1, "2024-03-01", "2024-03-05"), _w(2, "2024-03-05", "2024-03-09")]
        assert find_conflicts(windows) == {1: [1, 2]}

    def test_adjacent_days_do_not_conflict(self):
        windows = [_w(1, "2024-03-01", "2024-03-04"), _w(2, "2024-03-05", "2024-03-09")]
        assert find_conflicts(windows) == {}

    def test_priorities_must_match(self):
        windows = [
            _w(1, "2024-03-01", "2024-03-10", priority="high"),
            _w(2, "2024-03-01", "2024-03-10", priority="critical"),
        ]
        assert find_conflicts(windows) == {}

    def test_only_high_and_critical_count(self):
        windows = [
            _w(1, "2024-03-01", "2024-03-10", priority="medium"),
            _w(2, "2024-03-01", "2024-03-10", priority="medium"),
        ]
        assert find_conflicts(windows) == {}

    def test_grouped_per_assignee(self):
        windows = [
            _w(1, "2024-03-01", "2024-03-10", assignees=(1, 2)),
            _w(2, "2024-03-05", "2024-03-15", assignees=(1,)),
            _w(3, "2024-03-05", "2024-03-15", assignees=(3,)),
        ]
        assert find_conflicts(windows) == {1: [1, 2]}

    def test_long_task_overlapping_later_ones(self):
        windows = [
            _w(1, "2024-03-01", "2024-03-31"),
            _w(2, "2024-03-02", "2024-03-03"),
            _w(3, "2024-03-20", "2024-03-22"),
            _w(4, "2024-05-01", "2024-05-02"),
        ]
        assert find_conflicts(windows) == {1: [1, 2, 3]}

    def test_message(self):
        assert conflict_message(2) == "You have 2 conflicting tasks that overlap in schedule."


@pytest.fixture()
def example(make_user, make_project, make_task):
    user = make_user()
    project = make_project()
    a = make_task(project, "A", priority="high", assignees=[user], start="2024-03-01", due="2024-03-10")
    b = make_task(project, "B", priority="high", assignees=[user], start="2024-03-05", due="2024-03-15")
    c = make_task(project, "C", priority="high", assignees=[user], start="2024-04-01", due="2024-04-05")
    return {"user": user, "project": project, "a": a, "b": b, "c": c}


def _flags(*tasks):
    db.session.expire_all()
    return [db.session.get(Task, t.id).has_conflict for t in tasks]


class TestCheckTaskConflicts:
    def test_example_flags_notifies_and_publishes(self, example):
        result = check_task_conflicts()

        assert _flags(example["a"], example["b"], example["c"]) == [True, True, False]
        notes = Notification.query.filter_by(type="ConflictDetected").all()
        assert len(notes) == 1
        assert notes[0].recipient_id == example["user"].id
        assert notes[0].message == conflict_message(2)
        assert notes[0].link == "/dashboard"

        events = event_bus.recent(event_bus.CONFLICTS_CHANNEL)
        assert events == [{
            "userId": example["user"].id,
            "taskIds": sorted([example["a"].id, example["b"].id]),
            "message": "Task conflict detected",
        }]
        assert result["users_with_conflicts"] == 1
        assert result["tasks_flagged"] == 2
        assert result["notifications_created"] == 1
        assert result["events_published"] == 1

    def test_notification_also_forwarded(self, example):
        check_task_conflicts()
        forwarded = event_bus.recent(event_bus.NOTIFICATIONS_CHANNEL)
        assert [m["recipientId"] for m in forwarded] == [example["user"].id]

    def test_tasks_without_dates_ignored(self, make_user, make_project, make_task):
        user = make_user()
        project = make_project()
        make_task(project, priority="high", assignees=[user], start="2024-03-01", due="2024-03-10")
        make_task(project, priority="high", assignees=[user], start="2024-03-01")
        result = check_task_conflicts()
        assert result["users_with_conflicts"] == 0
        assert Notification.query.count() == 0

    def test_stale_flags_cleared(self, example, make_task):
        stale = make_task(example["project"], "Old", priority="low", has_conflict=True)
        result = check_task_conflicts()
        assert _flags(stale) == [False]
        assert result["flags_cleared"] == 1

    def test_stale_flags_kept_when_clearing_disabled(self, example, make_task):
        stale = make_task(example["project"], "Old", priority="low", has_conflict=True)
        check_task_conflicts(clear_stale=False)
        assert _flags(stale) == [True]

    def test_rescan_does_not_reflag(self, example):
        check_task_conflicts()
        second = check_task_conflicts()
        assert second["tasks_flagged"] == 0
        assert second["flags_cleared"] == 0

    def test_cached_task_list_reflects_new_flags(self, example, add_member, principal):
        add_member(example["project"], example["user"], "Developer")
        viewer = principal(example["user"])
        before = task_service.list_project_tasks(viewer, example["project"].id)
        assert [t["has_conflict"] for t in before] == [False, False, False]

        check_task_conflicts()
        after = {t["title"]: t["has_conflict"]
                 for t in task_service.list_project_tasks(viewer, example["project"].id)}
        assert after == {"A": True, "B": True, "C": False}

    def test_cached_task_list_reflects_cleared_flags(self, example, make_task, add_member, principal):
        add_member(example["project"], example["user"], "Manager")
        make_task(example["project"], "Old", priority="low", has_conflict=True)
        viewer = principal(example["user"])
        task_service.list_project_tasks(viewer, example["project"].id)

        check_task_conflicts()
        after = {t["title"]: t["has_conflict"]
                 for t in task_service.list_project_tasks(viewer, example["project"].id)}
        assert after["Old"] is False


class TestFailureIsolation:
    @pytest.fixture()
    def two_users(self, make_user, make_project, make_task):
        project = make_project()
        users = [make_user(), make_user()]
        for u in users:
            make_task(project, priority="critical", assignees=[u], start="2024-03-01", due="2024-03-10")
            make_task(project, priority="critical", assignees=[u], start="2024-03-02", due="2024-03-04")
        return users

    def test_notification_failure_does_not_stop_other_users(self, two_users):
        failing, ok = two_users
        original = NotificationService.create

        def _create(**kwargs):
            if kwargs["recipient_id"] == failing.id:
                raise RuntimeError("sink down")
            return original(**kwargs)

        with mock.patch.object(NotificationService, "create", side_effect=_create):
            result = check_task_conflicts()

        assert result["notification_failures"] == 1
        assert result["notifications_created"] == 1
        assert [n.recipient_id for n in Notification.query.all()] == [ok.id]
        # the failing user's event is still published
        assert result["events_published"] == 2

    def test_publish_failure_isolated(self, two_users):
        with mock.patch.object(conflict_detector.event_bus, "publish",
                               side_effect=ConnectionError("redis down")):
            result = check_task_conflicts()
        assert result["publish_failures"] == 2
        assert result["notifications_created"] == 2
        assert Notification.query.filter_by(type="ConflictDetected").count() == 2

    def test_store_failure_raises_infrastructure_error(self, two_users):
        with mock.patch.object(conflict_detector, "_flag_tasks",
                               side_effect=OperationalError("UPDATE", {}, Exception("db down"))):
            with pytest.raises(InfrastructureError):
                check_task_conflicts()
        assert Notification.query.count() == 0


class TestSingleFlight:
    def test_concurrent_scan_skipped(self, example):
        assert conflict_detector._scan_lock.acquire(blocking=False)
        try:
            result = check_task_conflicts()
        finally:
            conflict_detector._scan_lock.release()
        assert result["skipped"] is True
        assert _flags(example["a"]) == [False]
        assert Notification.query.count() == 0

    def test_lock_released_after_failure(self, example):
        with mock.patch.object(conflict_detector, "_flag_tasks",
                               side_effect=OperationalError("UPDATE", {}, Exception("db down"))):
            with pytest.raises(InfrastructureError):
                check_task_conflicts()
        assert check_task_conflicts()["tasks_flagged"] == 2


class TestScheduledJob:
    def test_run_job_records_history(self, example):
        result = SchedulerService.run_job("task_conflict_scan")
        assert result["status"] == "success"
        assert result["result"]["tasks_flagged"] == 2

        record = ScheduledJob.query.filter_by(job_name="task_conflict_scan").first()
        assert record is not None
        assert record.last_run_status == "success"

    def test_run_job_skipped_while_scan_running(self, example):
        conflict_detector._scan_lock.acquire()
        try:
            result = SchedulerService.run_job("task_conflict_scan")
        finally:
            conflict_detector._scan_lock.release()
        assert result["status"] == "skipped"

    def test_failed_job_reported(self, example):
        with mock.patch.object(conflict_detector, "_flag_tasks",
                               side_effect=OperationalError("UPDATE", {}, Exception("db down"))):
            result = SchedulerService.run_job("task_conflict_scan")
        assert result["status"] == "failed"
        assert "conflict scan failed" in result["error"]

    def test_unknown_job(self):
        assert SchedulerService.run_job("nope")["status"] == "error"

    def test_job_due_on_first_run(self):
        SchedulerService.ensure_jobs_registered()
        assert "task_conflict_scan" in SchedulerService.due_jobs()

    def test_skips_and_failures_counted_apart(self, example):
        conflict_detector._scan_lock.acquire()
        try:
            SchedulerService.run_job("task_conflict_scan")
        finally:
            conflict_detector._scan_lock.release()
        with mock.patch.object(conflict_detector, "_flag_tasks",
                               side_effect=OperationalError("UPDATE", {}, Exception("db down"))):
            SchedulerService.run_job("task_conflict_scan")
        SchedulerService.run_job("task_conflict_scan")

        record = ScheduledJob.query.filter_by(job_name="task_conflict_scan").first()
        assert record.run_count == 3
        assert record.skip_count == 1
        assert record.failure_count == 1
        assert record.last_run_status == "success"
        assert record.last_success_at is not None
        assert record.last_error is None

    def test_paused_job_not_due(self):
        SchedulerService.toggle_job("task_conflict_scan", False)
        assert "task_conflict_scan" not in SchedulerService.due_jobs()
        record = ScheduledJob.query.filter_by(job_name="task_conflict_scan").first()
        assert record.to_dict()["status"] == "paused"

    def test_due_again_after_interval(self):
        SchedulerService.ensure_jobs_registered()
        record = ScheduledJob.query.filter_by(job_name="task_conflict_scan").first()
        ran_at = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
        record.record_run(status="success", now=ran_at)
        db.session.commit()
        assert record.interval_minutes == 30
        assert not record.is_due(ran_at + timedelta(minutes=29))
        assert record.is_due(ran_at + timedelta(minutes=30))
