# tests/test_sync.py
import threading
import time

import pytest

from models import Project
from services.coordinator import Request, Result
from services.sync import (
    FileTokenStorage,
    MemoryTokenStorage,
    RefreshGate,
    Synchronizer,
    choose_current,
    dedupe,
)


@pytest.fixture
def sync(alice, make_sync):
    return make_sync("alice@example.com")


def test_signup_starts_a_session(coordinator):
    storage = MemoryTokenStorage()
    sync = Synchronizer(coordinator, storage)
    outcome = sync.signup("Dana", "dana@example.com", "secret123")
    assert outcome.ok
    assert sync.current_user["email"] == "dana@example.com"
    assert storage.load() == sync.session.credential
    assert sync.projects == [] and sync.session.current_project_id is None


def test_failed_login_keeps_signed_out(coordinator, alice):
    sync = Synchronizer(coordinator)
    outcome = sync.login("alice@example.com", "wrong")
    assert not outcome.ok and outcome.kind == "Unauthenticated"
    assert sync.current_user is None


def test_create_project_retries_key_and_selects_it(sync, bob, make_sync):
    first = sync.create_project("Demo App")
    assert first.ok and first.data["key"] == "DEMO"

    other = make_sync("bob@example.com")
    second = other.create_project("Demo App")
    assert second.ok, second.message
    assert second.data["key"] == "DEMO2"
    assert other.current_project["id"] == second.data["id"]

    third = other.create_project("Demo App")
    assert third.data["key"] == "DEMO3"
    fourth = other.create_project("Demo App")
    assert fourth.kind == "DuplicateKey"
    # the selection stays on the last project that was created
    assert other.current_project["key"] == "DEMO3"


def test_first_project_is_selected_and_selection_survives_refetch(sync):
    a = sync.create_project("Alpha").data
    assert sync.session.current_project_id == a["id"]
    b = sync.create_project("Bravo").data
    assert sync.session.current_project_id == b["id"]

    sync.select_project(a["id"])
    sync.refresh()
    assert sync.session.current_project_id == a["id"]

    assert sync.delete_project(a["id"]).ok
    assert sync.session.current_project_id is None
    sync.refresh()
    assert sync.session.current_project_id == b["id"]


def test_tasks_view_follows_current_project(sync):
    a = sync.create_project("Alpha").data
    b = sync.create_project("Bravo").data
    assert sync.create_task(a["id"], "in alpha").ok
    assert sync.create_task(b["id"], "in bravo").ok

    sync.select_project(a["id"])
    assert [t["title"] for t in sync.tasks] == ["in alpha"]
    sync.select_project(b["id"])
    assert [t["title"] for t in sync.tasks] == ["in bravo"]
    assert len(sync.all_tasks) == 2


def test_write_then_refetch(sync):
    project = sync.create_project("Alpha").data
    task = sync.create_task(project["id"], "t").data
    assert sync.update_task(task["id"], status="done").ok
    assert sync.session.tasks[task["id"]]["status"] == "done"
    assert sync.add_comment(task["id"], "hello").ok
    assert [c["content"] for c in sync.session.tasks[task["id"]]["comments"]] == ["hello"]
    assert sync.delete_task(task["id"]).ok
    assert task["id"] not in sync.session.tasks


def test_failed_mutation_leaves_cache_untouched(sync):
    project = sync.create_project("Alpha").data
    task = sync.create_task(project["id"], "t").data
    before = dict(sync.session.tasks)
    outcome = sync.update_task(task["id"], status="blocked")
    assert not outcome.ok and outcome.kind == "InvalidInput"
    assert sync.session.tasks == before


def test_members_are_refetched(sync, bob):
    project = sync.create_project("Alpha").data
    assert sync.add_member(project["id"], email="bob@example.com").ok
    assert {m["id"] for m in sync.current_project["members"]} == {sync.current_user["id"], bob.id}
    assert sync.remove_member(project["id"], bob.id).ok
    assert {m["id"] for m in sync.current_project["members"]} == {sync.current_user["id"]}


def test_profile_update_refreshes_current_user(sync):
    assert sync.update_user(sync.current_user["id"], name="Alice Liddell").ok
    assert sync.current_user["name"] == "Alice Liddell"
    wrong = sync.change_password("wrong", "newpass1")
    assert not wrong.ok and wrong.kind == "InvalidInput"
    # a wrong current password is not a dead session
    assert sync.current_user is not None
    assert sync.change_password("secret123", "newpass1").ok


def test_admin_collections(admin, alice, make_sync):
    sync = make_sync("admin@example.com")
    assert {u["email"] for u in sync.users} == {"admin@example.com", "alice@example.com"}
    assert sync.update_user(alice.id, is_active=False).ok
    assert [u["is_active"] for u in sync.users if u["id"] == alice.id] == [False]
    assert sync.delete_user(alice.id).ok
    assert [u["email"] for u in sync.users] == ["admin@example.com"]
    self_delete = sync.delete_user(admin.id)
    assert self_delete.kind == "SelfProtectionViolation"
    assert sync.dashboard().data["counts"]["total_users"] == 1


def test_non_admin_has_no_admin_collections(sync):
    assert sync.users == [] and sync.admin_tasks == [] and sync.admin_projects == []


def test_start_restores_valid_credential(coordinator, alice):
    storage = MemoryTokenStorage(alice.token)
    sync = Synchronizer(coordinator, storage)
    assert sync.start()
    assert sync.current_user["id"] == alice.id


def test_start_discards_invalid_credential(coordinator):
    storage = MemoryTokenStorage("garbage.token")
    sync = Synchronizer(coordinator, storage)
    assert not sync.start()
    assert sync.current_user is None
    assert storage.load() is None


def test_unauthenticated_result_logs_out(sync, coordinator):
    project = sync.create_project("Alpha").data
    coordinator.store.update_user(sync.current_user["id"], {"is_active": False})
    outcome = sync.update_project(project["id"], name="x")
    assert outcome.kind == "Unauthenticated"
    assert sync.current_user is None
    assert sync.projects == [] and sync.all_tasks == []
    assert sync.storage.load() is None


def test_browser_sessions_never_share_identity(coordinator, admin, alice):
    first = Synchronizer(coordinator)
    assert first.login("admin@example.com", "secret123").ok
    second = Synchronizer(coordinator)
    assert first.storage is not second.storage
    # a new session starts signed out, whoever signed in elsewhere
    assert not second.start()
    assert second.current_user is None and second.users == []

    assert second.login("alice@example.com", "secret123").ok
    first.logout()
    assert second.current_user["email"] == "alice@example.com"
    assert second.refresh().ok


def test_file_token_storage(tmp_path):
    storage = FileTokenStorage(tmp_path / "nested" / "token")
    assert storage.load() is None
    storage.save("abc.def")
    assert storage.load() == "abc.def"
    storage.clear()
    assert storage.load() is None
    storage.clear()


def test_dedupe_keeps_one_entry_per_id():
    rows = [{"id": 1, "v": "a"}, {"id": 2, "v": "b"}, {"id": 1, "v": "c"}]
    assert dedupe(rows) == {1: {"id": 1, "v": "c"}, 2: {"id": 2, "v": "b"}}


def test_choose_current():
    projects = [{"id": 3}, {"id": 5}]
    assert choose_current(None, projects) == 3
    assert choose_current(5, projects) == 5
    assert choose_current(7, projects) is None
    assert choose_current(None, []) is None


class DuplicatingBackend:
    """Returns every task twice, the way overlapping page reads can."""

    def __init__(self, coordinator):
        self.coordinator = coordinator

    def execute(self, request: Request) -> Result:
        result = self.coordinator.execute(request)
        if result.ok and request.operation == "task.list":
            items = result.data["items"]
            return Result.success({**result.data, "items": items + list(reversed(items))})
        return result


def test_task_cache_has_one_entry_per_task(coordinator, alice):
    sync = Synchronizer(DuplicatingBackend(coordinator))
    assert sync.login("alice@example.com", "secret123").ok
    project = sync.create_project("Alpha").data
    for i in range(3):
        sync.create_task(project["id"], f"t{i}")
    for _ in range(3):
        sync.refresh()
    assert len(sync.all_tasks) == 3
    assert len({t["id"] for t in sync.all_tasks}) == 3


def test_refresh_gate_coalesces_overlapping_calls():
    gate = RefreshGate()
    started = threading.Event()
    release = threading.Event()
    runs = []

    def slow():
        runs.append(1)
        if len(runs) == 1:
            started.set()
            release.wait(5)

    first = threading.Thread(target=gate.run, args=(slow,))
    first.start()
    assert started.wait(5)
    waiters = [threading.Thread(target=gate.run, args=(slow,)) for _ in range(5)]
    for w in waiters:
        w.start()
    deadline = time.time() + 5
    while gate.requested < 6 and time.time() < deadline:
        time.sleep(0.01)
    release.set()
    first.join(5)
    for w in waiters:
        w.join(5)

    # one run in flight plus one shared rerun for everything that queued behind it
    assert len(runs) == 2


def test_refresh_gate_failure_hands_over_to_waiter():
    gate = RefreshGate()
    started = threading.Event()
    release = threading.Event()
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            started.set()
            release.wait(5)
            raise RuntimeError("boom")

    errors = []

    def first_run():
        try:
            gate.run(flaky)
        except RuntimeError as exc:
            errors.append(exc)

    first = threading.Thread(target=first_run)
    first.start()
    assert started.wait(5)
    second = threading.Thread(target=gate.run, args=(flaky,))
    second.start()
    deadline = time.time() + 5
    while gate.requested < 2 and time.time() < deadline:
        time.sleep(0.01)
    release.set()
    first.join(5)
    second.join(5)

    assert len(errors) == 1
    assert len(calls) == 2
    assert not second.is_alive()


def test_admin_lists_are_complete(coordinator, admin, make_sync):
    for i in range(205):
        coordinator.store.create_project(Project(key=f"P{i}", name=f"Project {i}", owner_id=admin.id), "manager")
    sync = make_sync("admin@example.com")
    assert len(sync.admin_projects) == 205
    assert len(sync.projects) == 205


def test_admin_demoting_themselves_drops_admin_collections(admin, alice, make_sync):
    sync = make_sync("admin@example.com")
    assert sync.users
    outcome = sync.update_user(admin.id, role="user")
    assert outcome.ok and outcome.message is None
    assert sync.current_user["role"] == "user"
    assert not sync.session.is_admin
    assert sync.users == [] and sync.admin_projects == [] and sync.admin_tasks == []
