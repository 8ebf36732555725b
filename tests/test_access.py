# tests/test_access.py
import pytest

from services.access import (
    Action,
    Decision,
    ProjectFacts,
    Resource,
    TaskFacts,
    UserFacts,
    evaluate,
)
from services.auth import Identity

OWNER, MANAGER, DEV, OUTSIDER, REPORTER, ADMIN = 1, 2, 3, 4, 6, 9

PROJECT = ProjectFacts(OWNER, {OWNER: "manager", MANAGER: "manager", DEV: "developer", REPORTER: "member"})


def who(user_id, role="user"):
    return Identity(user_id, role)


@pytest.mark.parametrize("user_id,expected", [
    (OWNER, Decision.ALLOW),
    (MANAGER, Decision.ALLOW),
    (DEV, Decision.ALLOW),
    (OUTSIDER, Decision.DENY),
])
def test_project_read_requires_membership(user_id, expected):
    assert evaluate(who(user_id), Resource.PROJECT, Action.READ, PROJECT) is expected


def test_admin_reads_any_project():
    assert evaluate(who(ADMIN, "admin"), Resource.PROJECT, Action.READ, PROJECT) is Decision.ALLOW


@pytest.mark.parametrize("action", [Action.UPDATE, Action.DELETE])
def test_only_owner_or_admin_changes_project(action):
    assert evaluate(who(OWNER), Resource.PROJECT, action, PROJECT) is Decision.ALLOW
    assert evaluate(who(ADMIN, "admin"), Resource.PROJECT, action, PROJECT) is Decision.ALLOW
    # a manager membership is not ownership
    assert evaluate(who(MANAGER), Resource.PROJECT, action, PROJECT) is Decision.DENY
    assert evaluate(who(DEV), Resource.PROJECT, action, PROJECT) is Decision.DENY


def test_any_authenticated_user_creates_projects():
    assert evaluate(who(OUTSIDER), Resource.PROJECT, Action.CREATE) is Decision.ALLOW


def test_task_create_is_for_members_only():
    facts = TaskFacts(PROJECT, None, DEV)
    assert evaluate(who(DEV), Resource.TASK, Action.CREATE, facts) is Decision.ALLOW
    assert evaluate(who(OUTSIDER), Resource.TASK, Action.CREATE, facts) is Decision.DENY
    assert evaluate(who(ADMIN, "admin"), Resource.TASK, Action.CREATE, facts) is Decision.DENY


@pytest.mark.parametrize("user_id,role,expected", [
    (DEV, "user", Decision.ALLOW),        # assignee
    (REPORTER, "user", Decision.ALLOW),   # reporter
    (MANAGER, "user", Decision.ALLOW),    # project manager
    (OWNER, "user", Decision.ALLOW),      # owner counts as manager
    (ADMIN, "admin", Decision.ALLOW),
    (5, "user", Decision.DENY),
])
@pytest.mark.parametrize("action", [Action.UPDATE, Action.DELETE])
def test_task_editors(user_id, role, expected, action):
    facts = TaskFacts(PROJECT, DEV, REPORTER)
    assert evaluate(who(user_id, role), Resource.TASK, action, facts) is expected


def test_plain_member_cannot_edit_someone_elses_task():
    facts = TaskFacts(ProjectFacts(OWNER, {OWNER: "manager", DEV: "member", 7: "member"}), 7, OWNER)
    assert evaluate(who(DEV), Resource.TASK, Action.UPDATE, facts) is Decision.DENY
    assert evaluate(who(DEV), Resource.TASK, Action.READ, facts) is Decision.ALLOW


def test_users_edit_only_their_profile_fields():
    assert evaluate(who(DEV), Resource.USER, Action.UPDATE,
                    UserFacts(DEV, frozenset({"name", "avatar"}))) is Decision.ALLOW
    assert evaluate(who(DEV), Resource.USER, Action.UPDATE,
                    UserFacts(DEV, frozenset({"role"}))) is Decision.DENY
    assert evaluate(who(DEV), Resource.USER, Action.UPDATE,
                    UserFacts(OWNER, frozenset({"name"}))) is Decision.DENY


def test_user_read_and_delete():
    assert evaluate(who(DEV), Resource.USER, Action.READ, UserFacts(DEV)) is Decision.ALLOW
    assert evaluate(who(DEV), Resource.USER, Action.READ, UserFacts(OWNER)) is Decision.DENY
    assert evaluate(who(DEV), Resource.USER, Action.DELETE, UserFacts(OWNER)) is Decision.DENY
    assert evaluate(who(ADMIN, "admin"), Resource.USER, Action.DELETE, UserFacts(OWNER)) is Decision.ALLOW


def test_admin_cannot_delete_or_deactivate_self():
    me = who(ADMIN, "admin")
    assert evaluate(me, Resource.USER, Action.DELETE, UserFacts(ADMIN)) is Decision.SELF_PROTECTED
    assert evaluate(me, Resource.USER, Action.UPDATE,
                    UserFacts(ADMIN, frozenset({"is_active"}), deactivating=True)) is Decision.SELF_PROTECTED
    assert evaluate(me, Resource.USER, Action.UPDATE,
                    UserFacts(ADMIN, frozenset({"name"}))) is Decision.ALLOW


def test_admin_scope():
    assert evaluate(who(ADMIN, "admin"), Resource.ADMIN, Action.MANAGE) is Decision.ALLOW
    assert evaluate(who(OWNER), Resource.ADMIN, Action.MANAGE) is Decision.DENY


@pytest.mark.parametrize("action", [Action.UPDATE, Action.DELETE])
def test_assignee_or_reporter_outside_the_project_gets_nothing(action):
    # e.g. removed from the project after the task was assigned to them
    facts = TaskFacts(PROJECT, OUTSIDER, OUTSIDER)
    assert evaluate(who(OUTSIDER), Resource.TASK, action, facts) is Decision.DENY
    assert evaluate(who(OUTSIDER), Resource.TASK, Action.READ, facts) is Decision.DENY


def test_filing_a_task_for_someone_else_needs_a_manager():
    for_reporter = TaskFacts(PROJECT, None, REPORTER)
    assert evaluate(who(DEV), Resource.TASK, Action.CREATE, for_reporter) is Decision.DENY
    assert evaluate(who(MANAGER), Resource.TASK, Action.CREATE, for_reporter) is Decision.ALLOW
    assert evaluate(who(REPORTER), Resource.TASK, Action.CREATE, for_reporter) is Decision.ALLOW
