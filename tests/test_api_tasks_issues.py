"""Task and issue endpoints: status updates, triage, links, cached list views."""

from datetime import datetime, timezone

import pytest

from projecthub.models import db
from projecthub.models.issue import Issue
from projecthub.models.task import Task

BASE = "/api/v1"


@pytest.fixture()
def team(make_user, make_project, add_member):
    project = make_project()
    manager = make_user(roles=["manager"])
    dev = make_user(roles=[])
    qa = make_user(roles=[])
    guest = make_user(roles=["guest"])
    add_member(project, manager, "Manager")
    add_member(project, dev, "Developer")
    add_member(project, qa, "QA")
    add_member(project, guest, "Guest")
    return {"project": project, "manager": manager, "dev": dev, "qa": qa, "guest": guest}


class TestTaskEndpoints:
    def test_create_and_list(self, client, team, auth_headers):
        pid = team["project"].id
        res = client.post(f"{BASE}/projects/{pid}/tasks",
                          json={"title": "Build API", "assignees": [team["dev"].id]},
                          headers=auth_headers(team["dev"]))
        assert res.status_code == 201

        res = client.get(f"{BASE}/projects/{pid}/tasks", headers=auth_headers(team["manager"]))
        assert res.status_code == 200
        assert [t["title"] for t in res.get_json()["items"]] == ["Build API"]

    def test_list_cache_invalidated_on_write(self, client, team, make_task, auth_headers):
        pid = team["project"].id
        task = make_task(team["project"], assignees=[team["dev"]])
        h = auth_headers(team["manager"])
        assert client.get(f"{BASE}/projects/{pid}/tasks", headers=h).get_json()["items"][0]["status"] == "todo"

        res = client.put(f"{BASE}/tasks/{task.id}/status", json={"status": "done"}, headers=auth_headers(team["dev"]))
        assert res.status_code == 200
        assert res.get_json()["completed_date"] is not None

        item = client.get(f"{BASE}/projects/{pid}/tasks", headers=h).get_json()["items"][0]
        assert item["status"] == "done"

    def test_guest_sees_only_own_tasks(self, client, team, make_task, auth_headers):
        make_task(team["project"], "Mine", assignees=[team["guest"]])
        make_task(team["project"], "Other")
        res = client.get(f"{BASE}/projects/{team['project'].id}/tasks", headers=auth_headers(team["guest"]))
        assert [t["title"] for t in res.get_json()["items"]] == ["Mine"]

    def test_hidden_task_reads_as_not_found(self, client, team, make_task, auth_headers):
        task = make_task(team["project"])
        res = client.get(f"{BASE}/tasks/{task.id}", headers=auth_headers(team["guest"]))
        assert res.status_code == 404

    def test_invalid_filter(self, client, team, auth_headers):
        res = client.get(f"{BASE}/projects/{team['project'].id}/tasks?status=archived",
                         headers=auth_headers(team["manager"]))
        assert res.status_code == 400

    def test_status_required(self, client, team, make_task, auth_headers):
        task = make_task(team["project"], assignees=[team["dev"]])
        res = client.put(f"{BASE}/tasks/{task.id}/status", json={}, headers=auth_headers(team["dev"]))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_status_forbidden_for_non_owner(self, client, team, make_task, auth_headers):
        task = make_task(team["project"])
        res = client.put(f"{BASE}/tasks/{task.id}/status", json={"status": "done"},
                         headers=auth_headers(team["qa"]))
        assert res.status_code == 403
        db.session.expire_all()
        assert db.session.get(Task, task.id).status == "todo"

    def test_my_tasks_sorted_by_due_date(self, client, team, make_task, auth_headers):
        make_task(team["project"], "Later", assignees=[team["dev"]], due="2024-06-01")
        make_task(team["project"], "Sooner", assignees=[team["dev"]], due="2024-05-01")
        make_task(team["project"], "Undated", assignees=[team["dev"]])
        make_task(team["project"], "Not mine", due="2024-01-01")
        res = client.get(f"{BASE}/tasks/my-tasks", headers=auth_headers(team["dev"]))
        assert [t["title"] for t in res.get_json()["items"]] == ["Sooner", "Later", "Undated"]


class TestIssueEndpoints:
    def test_create_and_triage(self, client, team, auth_headers):
        pid = team["project"].id
        res = client.post(f"{BASE}/projects/{pid}/issues", json={"title": "Login 500", "severity": "high"},
                          headers=auth_headers(team["qa"]))
        assert res.status_code == 201
        issue = res.get_json()
        assert issue["status"] == "new"
        assert issue["sla"] == {"target_at": None, "breached": False}

        res = client.put(f"{BASE}/issues/{issue['id']}/triage", json={"status": "triaged"},
                         headers=auth_headers(team["manager"]))
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "triaged"
        assert body["sla"]["target_at"] is not None

        res = client.put(f"{BASE}/issues/{issue['id']}/triage", json={"status": "triaged"},
                         headers=auth_headers(team["manager"]))
        assert res.status_code == 400
        assert res.get_json()["code"] == "INVALID_STATUS"

    def test_triage_forbidden(self, client, team, make_issue, auth_headers):
        issue = make_issue(team["project"])
        res = client.put(f"{BASE}/issues/{issue.id}/triage", json={"status": "triaged"},
                         headers=auth_headers(team["qa"]))
        assert res.status_code == 403

    def test_triage_breach_flag(self, client, team, make_issue, auth_headers):
        issue = make_issue(team["project"], severity="critical",
                           created_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        res = client.put(f"{BASE}/issues/{issue.id}/triage", json={"status": "in_progress"},
                         headers=auth_headers(team["manager"]))
        assert res.get_json()["sla"]["breached"] is True

    def test_guest_cannot_report(self, client, team, auth_headers):
        res = client.post(f"{BASE}/projects/{team['project'].id}/issues", json={"title": "x"},
                          headers=auth_headers(team["guest"]))
        assert res.status_code == 403

    def test_link_task_twice(self, client, team, make_issue, make_task, auth_headers):
        issue = make_issue(team["project"])
        task = make_task(team["project"])
        url = f"{BASE}/issues/{issue.id}/link-task"
        h = auth_headers(team["manager"])

        res = client.post(url, json={"task_id": task.id}, headers=h)
        assert res.status_code == 200
        assert res.get_json()["related_task_ids"] == [task.id]

        res = client.post(url, json={"task_id": task.id}, headers=h)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ALREADY_LINKED"

        assert client.post(url, json={}, headers=h).status_code == 400

    def test_list_filters(self, client, team, make_issue, auth_headers):
        make_issue(team["project"], "A", severity="low")
        make_issue(team["project"], "B", severity="critical")
        h = auth_headers(team["guest"])
        res = client.get(f"{BASE}/projects/{team['project'].id}/issues?severity=critical", headers=h)
        assert [i["title"] for i in res.get_json()["items"]] == ["B"]
        res = client.get(f"{BASE}/projects/{team['project'].id}/issues?severity=huge", headers=h)
        assert res.status_code == 400

    def test_issue_list_cache_refreshes_after_triage(self, client, team, make_issue, auth_headers):
        issue = make_issue(team["project"])
        h = auth_headers(team["manager"])
        url = f"{BASE}/projects/{team['project'].id}/issues"
        assert client.get(url, headers=h).get_json()["items"][0]["status"] == "new"
        client.put(f"{BASE}/issues/{issue.id}/triage", json={"status": "wontfix"}, headers=h)
        assert client.get(url, headers=h).get_json()["items"][0]["status"] == "wontfix"
        db.session.expire_all()
        assert db.session.get(Issue, issue.id).closed_at is not None
