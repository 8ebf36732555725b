# services/sync.py
"""Client State Synchronizer.

Holds the client's read-only copy of server state and keeps it honest with a
write-then-refetch protocol: after any successful mutation the affected
collections are read again from the coordinator and replaced wholesale.
Nothing is patched in place, so the copy cannot drift from the server.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from services.coordinator import Request, Result
from utils.keys import derive_key, key_candidates

logger = logging.getLogger(__name__)

PROJECTS = "projects"
TASKS = "tasks"
ADMIN = "admin"
ALL_COLLECTIONS = (PROJECTS, TASKS, ADMIN)
# a rejected password here says nothing about the session itself
PASSWORD_CHECKS = frozenset({"auth.login", "auth.register"})

# collections a successful mutation invalidates
AFFECTS = {
    "project.create": (PROJECTS, ADMIN),
    "project.update": (PROJECTS, TASKS, ADMIN),
    "project.delete": (PROJECTS, TASKS, ADMIN),
    "project.add_member": (PROJECTS, ADMIN),
    "project.remove_member": (PROJECTS, TASKS, ADMIN),
    "task.create": (TASKS, ADMIN),
    "task.update": (TASKS, ADMIN),
    "task.delete": (TASKS, ADMIN),
    "task.comment": (TASKS, ADMIN),
    "user.update": ALL_COLLECTIONS,
    "admin.update_user": ALL_COLLECTIONS,
    "admin.delete_user": ALL_COLLECTIONS,
    "admin.update_project": (PROJECTS, TASKS, ADMIN),
    "admin.delete_project": (PROJECTS, TASKS, ADMIN),
    "admin.update_task": (TASKS, ADMIN),
    "admin.delete_task": (TASKS, ADMIN),
}


# ---- credential persistence ----
class MemoryTokenStorage:
    def __init__(self, token: Optional[str] = None):
        self._token = token

    def load(self) -> Optional[str]:
        return self._token

    def save(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStorage:
    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[str]:
        if not self.path.is_file():
            return None
        return self.path.read_text(encoding="utf-8").strip() or None

    def save(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding="utf-8")
        self.path.chmod(0o600)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


# ---- session context ----
@dataclass
class ClientSession:
    """Everything the client knows; rebuilt from server reads, never authoritative."""

    credential: Optional[str] = None
    user: Optional[dict] = None
    projects: List[dict] = field(default_factory=list)
    tasks: Dict[int, dict] = field(default_factory=dict)
    current_project_id: Optional[int] = None
    users: List[dict] = field(default_factory=list)
    admin_projects: List[dict] = field(default_factory=list)
    admin_tasks: List[dict] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get("role") == "admin"

    def clear(self) -> None:
        self.credential = None
        self.user = None
        self.projects = []
        self.tasks = {}
        self.current_project_id = None
        self.users = []
        self.admin_projects = []
        self.admin_tasks = []


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    message: Optional[str] = None
    kind: Optional[str] = None
    data: Any = None


def dedupe(items: Iterable[dict]) -> Dict[int, dict]:
    """Key rows by id; a later copy of the same id replaces the earlier one."""
    return {item["id"]: item for item in items}


def choose_current(previous_id: Optional[int], projects: List[dict]) -> Optional[int]:
    """Selection after a refetch: keep it if it still exists, drop it if not,
    and pick the first project when nothing was selected."""
    ids = [p["id"] for p in projects]
    if previous_id is not None:
        return previous_id if previous_id in ids else None
    return ids[0] if ids else None


class RefreshGate:
    """At most one refresh in flight; calls arriving meanwhile share one rerun."""

    def __init__(self):
        self._cond = threading.Condition()
        self._running = False
        self._requested = 0
        self._completed = 0

    @property
    def requested(self) -> int:
        return self._requested

    def run(self, fn: Callable[[], None]) -> None:
        with self._cond:
            self._requested += 1
            ticket = self._requested
            while self._running and self._completed < ticket:
                self._cond.wait()
            if self._completed >= ticket:
                return
            self._running = True
        while True:
            with self._cond:
                upto = self._requested
            try:
                fn()
            except BaseException:
                with self._cond:
                    self._running = False
                    self._cond.notify_all()
                raise
            with self._cond:
                self._completed = upto
                self._cond.notify_all()
                if self._requested == upto:
                    self._running = False
                    return


class RefetchFailed(Exception):
    def __init__(self, result: Result):
        super().__init__(result.message)
        self.result = result


class Synchronizer:
    def __init__(self, backend, storage=None):
        self.backend = backend
        self.storage = storage or MemoryTokenStorage()
        self.session = ClientSession()
        self._gates = {name: RefreshGate() for name in ALL_COLLECTIONS}

    # ---- views ----
    @property
    def current_user(self) -> Optional[dict]:
        return self.session.user

    @property
    def projects(self) -> List[dict]:
        return list(self.session.projects)

    @property
    def current_project(self) -> Optional[dict]:
        pid = self.session.current_project_id
        return next((p for p in self.session.projects if p["id"] == pid), None)

    @property
    def tasks(self) -> List[dict]:
        """Tasks of the selected project, derived from the full task cache."""
        pid = self.session.current_project_id
        if pid is None:
            return []
        return [t for t in self.session.tasks.values() if t["project_id"] == pid]

    @property
    def all_tasks(self) -> List[dict]:
        return list(self.session.tasks.values())

    @property
    def users(self) -> List[dict]:
        return list(self.session.users)

    @property
    def admin_projects(self) -> List[dict]:
        return list(self.session.admin_projects)

    @property
    def admin_tasks(self) -> List[dict]:
        return list(self.session.admin_tasks)

    def select_project(self, project_id: Optional[int]) -> None:
        if project_id is None or any(p["id"] == project_id for p in self.session.projects):
            self.session.current_project_id = project_id

    # ---- transport ----
    def _call(self, operation: str, target_id=None, payload=None) -> Result:
        result = self.backend.execute(Request(
            operation=operation,
            target_id=target_id,
            payload=payload or {},
            credential=self.session.credential,
        ))
        if not result.ok and result.kind == "Unauthenticated" and operation not in PASSWORD_CHECKS:
            logger.info("Credential rejected during %s; logging out", operation)
            self.logout()
        return result

    def _mutate(self, operation: str, target_id=None, payload=None) -> ActionResult:
        result = self._call(operation, target_id, payload)
        if not result.ok:
            return ActionResult(False, result.message, result.kind)
        refreshed = self.refresh(AFFECTS.get(operation, ALL_COLLECTIONS))
        if not refreshed.ok:
            return ActionResult(True, refreshed.message, refreshed.kind, result.data)
        return ActionResult(True, data=result.data)

    # ---- lifecycle ----
    def start(self) -> bool:
        """Restore a persisted credential; it is verified before anything is trusted."""
        token = self.storage.load()
        if not token:
            return False
        self.session.credential = token
        result = self._call("auth.verify")
        if not result.ok:
            # an Unauthenticated result has already logged out
            if result.kind != "Unauthenticated":
                self.session.clear()
            return False
        self.session.user = result.data["user"]
        self.refresh()
        return True

    def _begin(self, result: Result) -> ActionResult:
        if not result.ok:
            return ActionResult(False, result.message, result.kind)
        self.session.clear()
        self.session.credential = result.data["token"]
        self.session.user = result.data["user"]
        self.storage.save(result.data["token"])
        self.refresh()
        return ActionResult(True, data=result.data["user"])

    def login(self, email: str, password: str) -> ActionResult:
        return self._begin(self._call("auth.login", payload={"email": email, "password": password}))

    def signup(self, name: str, email: str, password: str, avatar: Optional[str] = None) -> ActionResult:
        payload = {"name": name, "email": email, "password": password}
        if avatar:
            payload["avatar"] = avatar
        return self._begin(self._call("auth.register", payload=payload))

    def logout(self) -> None:
        self.session.clear()
        self.storage.clear()

    # ---- refetch ----
    def refresh(self, collections: Iterable[str] = ALL_COLLECTIONS) -> ActionResult:
        if self.session.user is None:
            return ActionResult(False, "Not signed in", "Unauthenticated")
        loaders = {PROJECTS: self._refetch_projects, TASKS: self._refetch_tasks, ADMIN: self._refetch_admin}
        try:
            for name in ALL_COLLECTIONS:
                if name in collections:
                    self._gates[name].run(loaders[name])
        except RefetchFailed as exc:
            logger.warning("Refetch failed: %s", exc.result.kind)
            return ActionResult(False, exc.result.message, exc.result.kind)
        return ActionResult(True)

    def _read(self, operation: str, payload=None) -> List[dict]:
        result = self._call(operation, payload=payload)
        if not result.ok:
            raise RefetchFailed(result)
        return result.data["items"]

    def _refetch_projects(self) -> None:
        logger.debug("Refetching projects")
        projects = list(dedupe(self._read("project.list", {"limit": None})).values())
        self.session.projects = projects
        self.session.current_project_id = choose_current(self.session.current_project_id, projects)

    def _refetch_tasks(self) -> None:
        logger.debug("Refetching tasks")
        self.session.tasks = dedupe(self._read("task.list", {"limit": None}))

    def _refetch_admin(self) -> None:
        if not self.session.is_admin:
            self.session.users, self.session.admin_projects, self.session.admin_tasks = [], [], []
            return
        logger.debug("Refetching admin collections")
        page = {"limit": None}
        self.session.users = list(dedupe(self._read("admin.list_users", page)).values())
        self.session.admin_projects = list(dedupe(self._read("admin.list_projects", page)).values())
        self.session.admin_tasks = list(dedupe(self._read("admin.list_tasks", page)).values())

    # ---- mutations ----
    def create_project(self, name: str, key: Optional[str] = None, **fields) -> ActionResult:
        """Create a project, retrying ``KEY2`` and ``KEY3`` when the key is taken."""
        try:
            candidates = key_candidates(key or derive_key(name))
        except ValueError as exc:
            return ActionResult(False, str(exc), "InvalidInput")
        result = None
        for candidate in candidates:
            result = self._call("project.create", payload={**fields, "name": name, "key": candidate})
            if result.ok or result.kind != "DuplicateKey":
                break
            logger.info("Project key %s taken, trying the next suffix", candidate)
        if not result.ok:
            return ActionResult(False, result.message, result.kind)
        refreshed = self.refresh(AFFECTS["project.create"])
        self.select_project(result.data["id"])
        return ActionResult(True, refreshed.message, refreshed.kind, result.data)

    def update_project(self, project_id: int, **changes) -> ActionResult:
        return self._mutate("project.update", project_id, changes)

    def delete_project(self, project_id: int) -> ActionResult:
        return self._mutate("project.delete", project_id)

    def add_member(self, project_id: int, role: str = "member", user_id: Optional[int] = None,
                   email: Optional[str] = None) -> ActionResult:
        payload = {"role": role}
        if user_id is not None:
            payload["user_id"] = user_id
        if email:
            payload["email"] = email
        return self._mutate("project.add_member", project_id, payload)

    def remove_member(self, project_id: int, user_id: int) -> ActionResult:
        return self._mutate("project.remove_member", project_id, {"user_id": user_id})

    def create_task(self, project_id: int, title: str, **fields) -> ActionResult:
        return self._mutate("task.create", payload={**fields, "project": project_id, "title": title})

    def update_task(self, task_id: int, **changes) -> ActionResult:
        return self._mutate("task.update", task_id, changes)

    def delete_task(self, task_id: int) -> ActionResult:
        return self._mutate("task.delete", task_id)

    def add_comment(self, task_id: int, content: str) -> ActionResult:
        return self._mutate("task.comment", task_id, {"content": content})

    def update_user(self, user_id: int, **changes) -> ActionResult:
        me = self.session.user
        if me and user_id == me["id"]:
            result = self._call("user.update", user_id, changes)
            if not result.ok:
                return ActionResult(False, result.message, result.kind)
            # the refetch below depends on the role just saved
            self.session.user = result.data
            refreshed = self.refresh(AFFECTS["user.update"])
            return ActionResult(True, refreshed.message, refreshed.kind, result.data)
        return self._mutate("admin.update_user", user_id, changes)

    def delete_user(self, user_id: int) -> ActionResult:
        return self._mutate("admin.delete_user", user_id)

    def change_password(self, current_password: str, new_password: str) -> ActionResult:
        result = self._call("user.change_password", payload={
            "current_password": current_password,
            "new_password": new_password,
        })
        if not result.ok:
            return ActionResult(False, result.message, result.kind)
        return ActionResult(True)

    def dashboard(self) -> ActionResult:
        result = self._call("admin.dashboard")
        return ActionResult(result.ok, result.message, result.kind, result.data)
