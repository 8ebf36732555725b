# services/coordinator.py
"""Mutation Coordinator.

``Coordinator.execute`` is the only way in. Each operation goes through the
same stages: authenticate the credential, load the target and authorize
against it, validate the payload, then apply it to the store (running the
cascade plan for deletes). Failures come back as a tagged ``Result`` and are
never retried here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from db import SessionFactory
from models import Comment, Project, Task, User
from models.comment import CommentCreate
from models.common import normalize_email, utcnow
from models.project import ProjectCreate, ProjectUpdate
from models.project_member import MemberAdd, MemberRemove, MemberRole
from models.task import TaskCreate, TaskStatus, TaskUpdate
from models.user import PasswordChange, ProfileUpdate, Registration, UserRole, UserUpdate
from services.access import (
    Action,
    Decision,
    ProjectFacts,
    Resource,
    TaskFacts,
    UserFacts,
    evaluate,
)
from services.auth import CredentialStore, Identity, verify_password
from services.cascade import project_delete_plan, run_plan, task_delete_plan, user_delete_plan
from services.errors import (
    CrewboardError,
    Forbidden,
    InvalidInput,
    InvalidOrExpiredCredential,
    NotFound,
    SelfProtectionViolation,
    UnknownReference,
    from_validation_error,
)
from services.serializers import page_view, project_views, task_views, user_view
from services.store import ListQuery, ResourceStore
from utils.keys import derive_key

logger = logging.getLogger(__name__)

TASK_NULLABLE = frozenset({"assignee", "due_date", "estimated_hours", "actual_hours"})


@dataclass(frozen=True)
class Request:
    operation: str
    target_id: Optional[int] = None
    payload: Mapping[str, Any] = field(default_factory=dict)
    credential: Optional[str] = None


@dataclass(frozen=True)
class Result:
    ok: bool
    data: Any = None
    kind: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False

    @classmethod
    def success(cls, data=None) -> "Result":
        return cls(True, data)

    @classmethod
    def failure(cls, error: CrewboardError) -> "Result":
        return cls(False, None, error.kind, error.message, error.retryable)


_OPERATIONS: Dict[str, Tuple[Callable, bool]] = {}


def operation(name: str, public: bool = False):
    def register(fn):
        _OPERATIONS[name] = (fn, public)
        return fn
    return register


def _plain(value):
    return value.value if isinstance(value, Enum) else value


def _changes(parsed, nullable: Iterable[str] = ()) -> Dict[str, Any]:
    """Fields the caller actually sent; ``None`` only where the column allows it."""
    nullable = set(nullable)
    return {
        name: _plain(value)
        for name, value in parsed.model_dump(exclude_unset=True).items()
        if value is not None or name in nullable
    }


_BOOL = TypeAdapter(bool)


def _is_false(value) -> bool:
    try:
        return _BOOL.validate_python(value) is False
    except ValidationError:
        return False


def _int_field(payload: Mapping, name: str) -> int:
    try:
        return int(payload[name])
    except KeyError:
        raise InvalidInput(f"Missing field: {name}")
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid value for: {name}")


class Coordinator:
    def __init__(self, store: ResourceStore, credentials: CredentialStore, min_password: int = 6,
                 clock: Callable = utcnow):
        self.store = store
        self.credentials = credentials
        self.min_password = min_password
        self.clock = clock

    @staticmethod
    def operations():
        return sorted(_OPERATIONS)

    def execute(self, request: Request) -> Result:
        entry = _OPERATIONS.get(request.operation)
        if entry is None:
            return Result.failure(InvalidInput("Unknown operation"))
        handler, public = entry
        try:
            identity = None if public else self._authenticate(request.credential)
            return Result.success(handler(self, request, identity))
        except CrewboardError as exc:
            logger.info("%s failed: %s", request.operation, exc.kind)
            return Result.failure(exc)

    # ---- stages ----
    def _authenticate(self, credential: Optional[str]) -> Identity:
        claims = self.credentials.verify(credential)
        user = self.store.get_user(claims.user_id)
        if user is None or not user.is_active:
            raise InvalidOrExpiredCredential()
        # role is read from the account, not trusted from the credential
        return Identity(user.id, user.role)

    def _authorize(self, identity: Identity, resource: Resource, action: Action, facts=None) -> None:
        decision = evaluate(identity, resource, action, facts)
        if decision is Decision.SELF_PROTECTED:
            logger.warning("User %s attempted to %s their own account", identity.user_id, action.value)
            raise SelfProtectionViolation()
        if decision is Decision.DENY:
            logger.warning("Denied %s %s for user %s", action.value, resource.value, identity.user_id)
            raise Forbidden()

    def _validate(self, model, payload: Optional[Mapping]):
        payload = dict(payload or {})
        unknown = set(payload) - set(model.model_fields)
        if unknown:
            raise InvalidInput(f"Unknown field(s): {', '.join(sorted(unknown))}")
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise from_validation_error(exc) from exc

    def _check_password(self, password: str) -> None:
        if len(password or "") < self.min_password:
            raise InvalidInput(f"Password must be at least {self.min_password} characters.")

    # ---- snapshots ----
    def _target(self, request: Request) -> int:
        if request.target_id is None:
            raise InvalidInput("Missing target id")
        try:
            return int(request.target_id)
        except (TypeError, ValueError):
            raise InvalidInput("Invalid target id")

    def _user_or_404(self, user_id: int) -> User:
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def _project_or_404(self, project_id: int) -> Project:
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFound("Project not found")
        return project

    def _task_or_404(self, task_id: int) -> Task:
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFound("Task not found")
        return task

    def _project_facts(self, project: Project) -> ProjectFacts:
        return ProjectFacts(project.owner_id, self.store.member_roles(project.id))

    def _task_facts(self, task: Task) -> TaskFacts:
        project = self._project_or_404(task.project_id)
        return TaskFacts(self._project_facts(project), task.assignee_id, task.reporter_id)

    def _require_members(self, facts: ProjectFacts, user_ids) -> None:
        self.store.require_users(user_ids)
        if any(uid is not None and not facts.is_member(uid) for uid in user_ids):
            raise InvalidInput("Assignee and reporter must be members of the project")

    def _project_view(self, project: Project) -> dict:
        return project_views(self.store, [project])[0]

    def _task_view(self, task: Task) -> dict:
        return task_views(self.store, [task])[0]

    def _session_view(self, user: User) -> dict:
        token = self.credentials.issue(Identity(user.id, user.role))
        return {"user": user_view(user), "token": token}

    # ---- auth ----
    @operation("auth.register", public=True)
    def _register(self, request, identity):
        parsed = self._validate(Registration, request.payload)
        self._check_password(parsed.password)
        user = self.store.create_user(User(
            name=parsed.name,
            email=parsed.email,
            avatar=parsed.avatar,
            role=UserRole.USER.value,
            password_hash=self.credentials.hash(parsed.password),
        ))
        logger.info("Registered user %s", user.id)
        return self._session_view(user)

    @operation("auth.login", public=True)
    def _login(self, request, identity):
        payload = request.payload or {}
        found = self.credentials.authenticate(str(payload.get("email", "")), str(payload.get("password", "")))
        logger.info("User %s logged in", found.user_id)
        return self._session_view(self._user_or_404(found.user_id))

    @operation("auth.verify")
    def _verify(self, request, identity):
        return {"user": user_view(self._user_or_404(identity.user_id))}

    @operation("auth.refresh")
    def _refresh(self, request, identity):
        return self._session_view(self._user_or_404(identity.user_id))

    # ---- users ----
    @operation("user.read")
    def _read_user(self, request, identity):
        user = self._user_or_404(request.target_id or identity.user_id)
        self._authorize(identity, Resource.USER, Action.READ, UserFacts(user.id))
        return user_view(user)

    @operation("user.update")
    def _update_user(self, request, identity):
        user = self._user_or_404(request.target_id or identity.user_id)
        payload = dict(request.payload or {})
        facts = UserFacts(user.id, frozenset(payload), "is_active" in payload and _is_false(payload["is_active"]))
        self._authorize(identity, Resource.USER, Action.UPDATE, facts)
        parsed = self._validate(UserUpdate if identity.is_admin else ProfileUpdate, payload)
        changes = _changes(parsed, nullable={"avatar"})
        updated = self.store.update_user(user.id, changes)
        logger.info("User %s updated by %s: %s", user.id, identity.user_id, sorted(changes))
        return user_view(updated)

    @operation("user.change_password")
    def _change_password(self, request, identity):
        parsed = self._validate(PasswordChange, request.payload)
        user = self._user_or_404(identity.user_id)
        if not verify_password(parsed.current_password, user.password_hash):
            raise InvalidInput("Current password is incorrect")
        self._check_password(parsed.new_password)
        self.store.update_user(user.id, {"password_hash": self.credentials.hash(parsed.new_password)})
        logger.info("User %s changed their password", user.id)
        return {"user": user_view(user)}

    @operation("user.delete")
    def _delete_user(self, request, identity):
        user = self._user_or_404(self._target(request))
        self._authorize(identity, Resource.USER, Action.DELETE, UserFacts(user.id))
        report = run_plan(user_delete_plan(user.id, identity.user_id), self.store.sessions)
        logger.info(
            "User %s deleted by %s; %d reported task(s) and %d project(s) reassigned to the deleting admin",
            user.id, identity.user_id,
            report.affected.get("reassign_reporter", 0), report.affected.get("transfer_ownership", 0),
        )
        return {"deleted": user.id, "cascade": report.affected}

    # ---- projects ----
    @operation("project.create")
    def _create_project(self, request, identity):
        self._authorize(identity, Resource.PROJECT, Action.CREATE)
        parsed = self._validate(ProjectCreate, request.payload)
        project = self.store.create_project(Project(
            key=parsed.key or derive_key(parsed.name),
            name=parsed.name,
            description=parsed.description,
            status=parsed.status.value,
            visibility=parsed.visibility.value,
            tags=parsed.tags,
            owner_id=identity.user_id,
        ), owner_role=MemberRole.MANAGER.value)
        logger.info("Project %s (%s) created by user %s", project.id, project.key, identity.user_id)
        return self._project_view(project)

    @operation("project.read")
    def _read_project(self, request, identity):
        project = self._project_or_404(self._target(request))
        self._authorize(identity, Resource.PROJECT, Action.READ, self._project_facts(project))
        return self._project_view(project)

    @operation("project.list")
    def _list_projects(self, request, identity):
        query = self._validate(ListQuery, request.payload)
        page = self.store.list_projects(query, member_id=identity.user_id)
        return page_view(page, project_views(self.store, page.items))

    @operation("project.update")
    def _update_project(self, request, identity):
        project = self._project_or_404(self._target(request))
        self._authorize(identity, Resource.PROJECT, Action.UPDATE, self._project_facts(project))
        changes = _changes(self._validate(ProjectUpdate, request.payload))
        updated = self.store.update_project(project.id, changes)
        logger.info("Project %s updated by user %s: %s", project.id, identity.user_id, sorted(changes))
        return self._project_view(updated)

    @operation("project.delete")
    def _delete_project(self, request, identity):
        project = self._project_or_404(self._target(request))
        self._authorize(identity, Resource.PROJECT, Action.DELETE, self._project_facts(project))
        report = run_plan(project_delete_plan(project.id), self.store.sessions)
        logger.info("Project %s deleted by user %s with %d task(s)",
                    project.id, identity.user_id, report.affected.get("delete_tasks", 0))
        return {"deleted": project.id, "cascade": report.affected}

    @operation("project.add_member")
    def _add_member(self, request, identity):
        project = self._project_or_404(self._target(request))
        self._authorize(identity, Resource.PROJECT, Action.UPDATE, self._project_facts(project))
        parsed = self._validate(MemberAdd, request.payload)
        if parsed.user_id is not None:
            user = self.store.get_user(parsed.user_id)
        else:
            user = self.store.find_user_by_email(normalize_email(parsed.email))
        if user is None:
            raise UnknownReference("User not found")
        self.store.upsert_member(project.id, user.id, parsed.role.value)
        logger.info("User %s joined project %s as %s", user.id, project.id, parsed.role.value)
        return self._project_view(project)

    @operation("project.remove_member")
    def _remove_member(self, request, identity):
        project = self._project_or_404(self._target(request))
        self._authorize(identity, Resource.PROJECT, Action.UPDATE, self._project_facts(project))
        parsed = self._validate(MemberRemove, request.payload)
        if parsed.user_id == project.owner_id:
            raise InvalidInput("The project owner cannot be removed")
        if not self.store.remove_member(project.id, parsed.user_id):
            raise NotFound("Member not found")
        logger.info("User %s removed from project %s", parsed.user_id, project.id)
        return self._project_view(project)

    # ---- tasks ----
    @operation("task.create")
    def _create_task(self, request, identity):
        project = self.store.get_project(_int_field(request.payload or {}, "project"))
        if project is None:
            raise UnknownReference("Project does not exist")
        parsed = self._validate(TaskCreate, request.payload)
        reporter_id = parsed.reporter or identity.user_id
        facts = TaskFacts(self._project_facts(project), parsed.assignee, reporter_id)
        self._authorize(identity, Resource.TASK, Action.CREATE, facts)
        self._require_members(facts.project, [parsed.assignee, reporter_id])
        task = self.store.create_task(Task(
            project_id=project.id,
            title=parsed.title,
            description=parsed.description,
            status=parsed.status.value,
            priority=parsed.priority.value,
            type=parsed.type.value,
            assignee_id=parsed.assignee,
            reporter_id=reporter_id,
            due_date=parsed.due_date,
            estimated_hours=parsed.estimated_hours,
            actual_hours=parsed.actual_hours,
            labels=parsed.labels,
        ))
        logger.info("Task %s created in project %s by user %s", task.id, project.id, identity.user_id)
        return self._task_view(task)

    @operation("task.read")
    def _read_task(self, request, identity):
        task = self._task_or_404(self._target(request))
        self._authorize(identity, Resource.TASK, Action.READ, self._task_facts(task))
        return self._task_view(task)

    @operation("task.list")
    def _list_tasks(self, request, identity):
        query = self._validate(ListQuery, request.payload)
        project_id = query.filters.get("project")
        if project_id not in (None, ""):
            project = self._project_or_404(_int_field(query.filters, "project"))
            self._authorize(identity, Resource.PROJECT, Action.READ, self._project_facts(project))
            scope = None
        else:
            scope = self.store.project_ids_for(identity.user_id)
        page = self.store.list_tasks(query, project_ids=scope)
        return page_view(page, task_views(self.store, page.items))

    @operation("task.update")
    def _update_task(self, request, identity):
        task = self._task_or_404(self._target(request))
        facts = self._task_facts(task)
        self._authorize(identity, Resource.TASK, Action.UPDATE, facts)
        parsed = self._validate(TaskUpdate, request.payload)
        if parsed.project is not None and parsed.project != task.project_id:
            raise InvalidInput("A task cannot be moved to another project")
        changes = _changes(parsed, nullable=TASK_NULLABLE)
        changes.pop("project", None)
        if "assignee" in changes:
            changes["assignee_id"] = changes.pop("assignee")
            self._require_members(facts.project, [changes["assignee_id"]])
        updated = self.store.update_task(task.id, changes)
        logger.info("Task %s updated by user %s: %s", task.id, identity.user_id, sorted(changes))
        return self._task_view(updated)

    @operation("task.delete")
    def _delete_task(self, request, identity):
        task = self._task_or_404(self._target(request))
        self._authorize(identity, Resource.TASK, Action.DELETE, self._task_facts(task))
        run_plan(task_delete_plan(task.id), self.store.sessions)
        logger.info("Task %s deleted by user %s", task.id, identity.user_id)
        return {"deleted": task.id}

    @operation("task.comment")
    def _comment(self, request, identity):
        task = self._task_or_404(self._target(request))
        self._authorize(identity, Resource.TASK, Action.READ, self._task_facts(task))
        parsed = self._validate(CommentCreate, request.payload)
        self.store.add_comment(Comment(task_id=task.id, author_id=identity.user_id, content=parsed.content))
        logger.info("User %s commented on task %s", identity.user_id, task.id)
        return self._task_view(task)

    # ---- admin scope ----
    def _require_admin(self, identity: Identity) -> None:
        self._authorize(identity, Resource.ADMIN, Action.MANAGE)

    @operation("admin.dashboard")
    def _dashboard(self, request, identity):
        self._require_admin(identity)
        store = self.store
        return {
            "counts": {
                "total_users": store.count(User),
                "admin_users": store.count(User, User.role == UserRole.ADMIN.value),
                "total_projects": store.count(Project),
                "total_tasks": store.count(Task),
                "completed_tasks": store.count(Task, Task.status == TaskStatus.DONE.value),
                "overdue_tasks": store.overdue_task_count(self.clock().date()),
            },
            "recent": {
                "users": [user_view(u) for u in store.recent(User, 5)],
                "projects": project_views(store, store.recent(Project, 5)),
                "tasks": task_views(store, store.recent(Task, 10)),
            },
        }

    @operation("admin.list_users")
    def _admin_users(self, request, identity):
        self._require_admin(identity)
        page = self.store.list_users(self._validate(ListQuery, request.payload))
        return page_view(page, [user_view(u) for u in page.items])

    @operation("admin.list_projects")
    def _admin_projects(self, request, identity):
        self._require_admin(identity)
        page = self.store.list_projects(self._validate(ListQuery, request.payload))
        return page_view(page, project_views(self.store, page.items))

    @operation("admin.list_tasks")
    def _admin_tasks(self, request, identity):
        self._require_admin(identity)
        page = self.store.list_tasks(self._validate(ListQuery, request.payload))
        return page_view(page, task_views(self.store, page.items))

    @operation("admin.update_user")
    def _admin_update_user(self, request, identity):
        self._require_admin(identity)
        self._target(request)
        return self._update_user(request, identity)

    @operation("admin.delete_user")
    def _admin_delete_user(self, request, identity):
        self._require_admin(identity)
        return self._delete_user(request, identity)

    @operation("admin.update_project")
    def _admin_update_project(self, request, identity):
        self._require_admin(identity)
        return self._update_project(request, identity)

    @operation("admin.delete_project")
    def _admin_delete_project(self, request, identity):
        self._require_admin(identity)
        return self._delete_project(request, identity)

    @operation("admin.update_task")
    def _admin_update_task(self, request, identity):
        self._require_admin(identity)
        return self._update_task(request, identity)

    @operation("admin.delete_task")
    def _admin_delete_task(self, request, identity):
        self._require_admin(identity)
        return self._delete_task(request, identity)


def build_coordinator(engine, settings, **credential_options) -> Coordinator:
    """Wire store, credential store and coordinator onto one engine."""
    store = ResourceStore(SessionFactory(engine))
    credentials = CredentialStore(store, settings.secret, settings.token_ttl, **credential_options)
    return Coordinator(store, credentials, min_password=settings.min_password)
