# tests/test_cascade.py
import pytest
from sqlalchemy.exc import OperationalError

from models import Comment, Project, ProjectMember, Task, User
from services.cascade import (
    CascadeIncomplete,
    CascadeStep,
    project_delete_plan,
    run_plan,
    user_delete_plan,
)


@pytest.fixture
def project(alice, bob):
    project = alice.call("project.create", name="Demo App").data
    alice.call("project.add_member", project["id"], user_id=bob.id)
    for i in range(3):
        task = alice.call("task.create", project=project["id"], title=f"t{i}", assignee=bob.id).data
        bob.call("task.comment", task["id"], content=f"c{i}")
    return project


def test_project_plan_order():
    assert project_delete_plan(1).names == [
        "delete_task_comments", "delete_tasks", "delete_memberships", "delete_project",
    ]
    assert user_delete_plan(1, 2).names == [
        "remove_memberships", "clear_assignee", "reassign_reporter",
        "transfer_ownership", "clear_comment_author", "delete_user",
    ]


def test_project_delete_removes_everything_below_it(coordinator, project, alice):
    store = coordinator.store
    result = alice.call("project.delete", project["id"])
    assert result.ok
    assert result.data["cascade"]["delete_tasks"] == 3
    assert store.count(Task, Task.project_id == project["id"]) == 0
    assert store.count(ProjectMember, ProjectMember.project_id == project["id"]) == 0
    assert store.count(Comment) == 0
    assert alice.call("project.delete", project["id"]).kind == "NotFound"


def test_user_delete_reassigns_and_clears(coordinator, project, alice, bob, admin):
    store = coordinator.store
    reported = bob.call("task.create", project=project["id"], title="by bob", priority="high",
                        due_date="2030-05-01", labels=["x"]).data
    before = alice.call("task.read", reported["id"]).data

    result = admin.call("admin.delete_user", bob.id)
    assert result.ok, result.message

    after = alice.call("task.read", reported["id"]).data
    assert after["reporter_id"] == admin.id
    for name in ("title", "priority", "status", "due_date", "labels", "assignee_id", "project_id"):
        assert after[name] == before[name]
    assert store.count(Task, Task.assignee_id == bob.id) == 0
    assert store.count(Task, Task.reporter_id == bob.id) == 0
    assert store.count(ProjectMember, ProjectMember.user_id == bob.id) == 0
    assert store.get_user(bob.id) is None
    # comments survive without an author
    assert store.count(Comment, Comment.author_id.is_(None)) == 3


def test_user_delete_transfers_owned_projects(coordinator, alice, admin):
    project = alice.call("project.create", name="Solo").data
    assert admin.call("user.delete", alice.id).ok
    moved = admin.call("project.read", project["id"]).data
    assert moved["owner_id"] == admin.id
    assert [(m["id"], m["role"]) for m in moved["members"]] == [(admin.id, "manager")]
    assert coordinator.store.count(Project, Project.owner_id == alice.id) == 0


def test_non_admin_cannot_delete_users(alice, bob):
    assert alice.call("user.delete", bob.id).kind == "Forbidden"
    assert alice.call("admin.delete_user", bob.id).kind == "Forbidden"


def test_partial_failure_keeps_completed_steps_and_can_be_rerun(coordinator, project):
    store = coordinator.store
    plan = project_delete_plan(project["id"])

    def broken(session):
        raise OperationalError("DELETE", {}, Exception("disk I/O error"))

    real_steps = plan.steps
    plan.steps = real_steps[:2] + [CascadeStep("delete_memberships", broken)] + real_steps[3:]
    with pytest.raises(CascadeIncomplete) as excinfo:
        run_plan(plan, store.sessions)

    report = excinfo.value.report
    assert report.completed == ["delete_task_comments", "delete_tasks"]
    assert report.failed == "delete_memberships"
    assert excinfo.value.kind == "Unavailable" and excinfo.value.retryable
    assert store.count(Task, Task.project_id == project["id"]) == 0
    assert store.get_project(project["id"]) is not None

    rerun = run_plan(project_delete_plan(project["id"]), store.sessions)
    assert rerun.complete
    assert rerun.affected["delete_tasks"] == 0
    assert store.get_project(project["id"]) is None
