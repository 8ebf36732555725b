# services/store.py
"""Resource Store for users, projects, memberships, tasks and comments.

Uniqueness of ``Project.key`` and ``User.email`` is enforced by unique
indexes: the insert itself is the check, so two concurrent writers cannot
both succeed. Every method opens its own session and returns detached rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from math import ceil
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Field, SQLModel, func, select

from models import Comment, Project, ProjectMember, Task, User
from models.common import utcnow
from models.project import ProjectStatus, Visibility
from models.task import TaskPriority, TaskStatus, TaskType
from models.user import UserRole
from services.errors import (
    DuplicateEmail,
    DuplicateKey,
    InvalidInput,
    NotFound,
    UnknownReference,
)

logger = logging.getLogger(__name__)


class ListQuery(SQLModel):
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=20, ge=1, le=500)
    search: str = ""
    filters: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class Page:
    items: list
    total: int
    page: int
    limit: Optional[int]

    @property
    def total_pages(self) -> int:
        if not self.limit:
            return 1 if self.total else 0
        return ceil(self.total / self.limit)


@dataclass(frozen=True)
class Listing:
    """Which columns a listing searches and which it filters by equality."""

    model: type
    search_fields: Tuple[str, ...]
    enum_filters: Mapping[str, type] = field(default_factory=dict)
    id_filters: Mapping[str, str] = field(default_factory=dict)

    def clauses(self, query: ListQuery) -> list:
        out = []
        term = (query.search or "").strip().lower()
        if term:
            pattern = "%" + term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
            out.append(or_(*[
                func.lower(getattr(self.model, name)).like(pattern, escape="\\")
                for name in self.search_fields
            ]))
        for name, value in (query.filters or {}).items():
            if value is None or value == "":
                continue
            if name in self.enum_filters:
                try:
                    value = self.enum_filters[name](value).value
                except ValueError:
                    raise InvalidInput(f"Unknown {name} filter value")
                out.append(getattr(self.model, name) == value)
            elif name in self.id_filters:
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    raise InvalidInput(f"Invalid {name} filter value")
                out.append(getattr(self.model, self.id_filters[name]) == value)
            else:
                raise InvalidInput(f"Unknown filter: {name}")
        return out


USER_LISTING = Listing(User, ("name", "email"), {"role": UserRole})
PROJECT_LISTING = Listing(Project, ("name", "key"), {"status": ProjectStatus, "visibility": Visibility})
TASK_LISTING = Listing(
    Task,
    ("title", "description"),
    {"status": TaskStatus, "priority": TaskPriority, "type": TaskType},
    {"project": "project_id", "assignee": "assignee_id", "reporter": "reporter_id"},
)


def _integrity_error(exc: IntegrityError, duplicate_cls):
    text = str(getattr(exc, "orig", exc)).lower()
    if "foreign key" in text:
        return UnknownReference()
    return duplicate_cls()


class ResourceStore:
    def __init__(self, sessions):
        self.sessions = sessions

    def _commit(self, s, duplicate_cls=InvalidInput):
        try:
            s.commit()
        except IntegrityError as exc:
            s.rollback()
            logger.info("Write rejected by constraint: %s", duplicate_cls.__name__)
            raise _integrity_error(exc, duplicate_cls) from exc

    def _page(self, listing: Listing, query: ListQuery, *where) -> Page:
        with self.sessions() as s:
            stmt = select(listing.model).where(*where, *listing.clauses(query))
            total = s.exec(select(func.count()).select_from(stmt.subquery())).one()
            stmt = stmt.order_by(listing.model.created_at.desc(), listing.model.id.desc())
            if query.limit:
                stmt = stmt.offset((query.page - 1) * query.limit).limit(query.limit)
            items = s.exec(stmt).all()
        return Page(items=list(items), total=int(total), page=query.page, limit=query.limit)

    def _update(self, model, row_id: int, changes: Mapping, duplicate_cls=InvalidInput):
        with self.sessions() as s:
            row = s.get(model, row_id)
            if row is None:
                raise NotFound(f"{model.__name__} not found")
            for name, value in changes.items():
                setattr(row, name, value)
            row.updated_at = utcnow()
            s.add(row)
            self._commit(s, duplicate_cls)
            s.refresh(row)
            return row

    def _by_ids(self, model, ids: Iterable[Optional[int]]) -> dict:
        ids = {i for i in ids if i is not None}
        if not ids:
            return {}
        with self.sessions() as s:
            rows = s.exec(select(model).where(model.id.in_(ids))).all()
        return {r.id: r for r in rows}

    # ---- users ----
    def find_user_by_email(self, email: str) -> Optional[User]:
        with self.sessions() as s:
            return s.exec(select(User).where(User.email == email.strip().lower())).first()

    def get_user(self, user_id: int) -> Optional[User]:
        with self.sessions() as s:
            return s.get(User, user_id)

    def users_by_ids(self, ids) -> Dict[int, User]:
        return self._by_ids(User, ids)

    def require_users(self, ids) -> None:
        wanted = {i for i in ids if i is not None}
        missing = wanted - set(self.users_by_ids(wanted))
        if missing:
            raise UnknownReference("Referenced user does not exist")

    def create_user(self, user: User) -> User:
        with self.sessions() as s:
            s.add(user)
            self._commit(s, DuplicateEmail)
            s.refresh(user)
            return user

    def update_user(self, user_id: int, changes: Mapping) -> User:
        return self._update(User, user_id, changes, DuplicateEmail)

    def list_users(self, query: ListQuery) -> Page:
        return self._page(USER_LISTING, query)

    # ---- projects ----
    def create_project(self, project: Project, owner_role: str) -> Project:
        """Insert the project and the owner's membership in one transaction."""
        with self.sessions() as s:
            s.add(project)
            try:
                s.flush()
            except IntegrityError as exc:
                s.rollback()
                raise _integrity_error(exc, DuplicateKey) from exc
            s.add(ProjectMember(project_id=project.id, user_id=project.owner_id, role=owner_role))
            self._commit(s, DuplicateKey)
            s.refresh(project)
            return project

    def get_project(self, project_id: int) -> Optional[Project]:
        with self.sessions() as s:
            return s.get(Project, project_id)

    def projects_by_ids(self, ids) -> Dict[int, Project]:
        return self._by_ids(Project, ids)

    def update_project(self, project_id: int, changes: Mapping) -> Project:
        return self._update(Project, project_id, changes, DuplicateKey)

    def _membership_clause(self, user_id: int):
        joined = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
        return or_(Project.owner_id == user_id, Project.id.in_(joined))

    def list_projects(self, query: ListQuery, member_id: Optional[int] = None) -> Page:
        where = [self._membership_clause(member_id)] if member_id is not None else []
        return self._page(PROJECT_LISTING, query, *where)

    def project_ids_for(self, user_id: int) -> List[int]:
        with self.sessions() as s:
            return list(s.exec(select(Project.id).where(self._membership_clause(user_id))).all())

    def members_of(self, project_ids) -> Dict[int, List[ProjectMember]]:
        out: Dict[int, List[ProjectMember]] = {pid: [] for pid in project_ids}
        if not out:
            return out
        with self.sessions() as s:
            rows = s.exec(
                select(ProjectMember)
                .where(ProjectMember.project_id.in_(list(out)))
                .order_by(ProjectMember.joined_at, ProjectMember.id)
            ).all()
        for m in rows:
            out[m.project_id].append(m)
        return out

    def member_roles(self, project_id: int) -> Dict[int, str]:
        return {m.user_id: m.role for m in self.members_of([project_id])[project_id]}

    def upsert_member(self, project_id: int, user_id: int, role: str) -> ProjectMember:
        with self.sessions() as s:
            m = s.exec(
                select(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
            ).first()
            if m is None:
                m = ProjectMember(project_id=project_id, user_id=user_id, role=role)
            else:
                m.role = role
            s.add(m)
            self._commit(s)
            s.refresh(m)
            return m

    def remove_member(self, project_id: int, user_id: int) -> bool:
        with self.sessions() as s:
            m = s.exec(
                select(ProjectMember).where(ProjectMember.project_id == project_id, ProjectMember.user_id == user_id)
            ).first()
            if m is None:
                return False
            s.delete(m)
            self._commit(s)
            return True

    # ---- tasks ----
    def create_task(self, task: Task) -> Task:
        with self.sessions() as s:
            s.add(task)
            self._commit(s, UnknownReference)
            s.refresh(task)
            return task

    def get_task(self, task_id: int) -> Optional[Task]:
        with self.sessions() as s:
            return s.get(Task, task_id)

    def update_task(self, task_id: int, changes: Mapping) -> Task:
        return self._update(Task, task_id, changes, UnknownReference)

    def list_tasks(self, query: ListQuery, project_ids: Optional[List[int]] = None) -> Page:
        where = [Task.project_id.in_(project_ids)] if project_ids is not None else []
        return self._page(TASK_LISTING, query, *where)

    def comments_for(self, task_ids) -> Dict[int, List[Comment]]:
        out: Dict[int, List[Comment]] = {tid: [] for tid in task_ids}
        if not out:
            return out
        with self.sessions() as s:
            rows = s.exec(
                select(Comment).where(Comment.task_id.in_(list(out))).order_by(Comment.created_at, Comment.id)
            ).all()
        for c in rows:
            out[c.task_id].append(c)
        return out

    def add_comment(self, comment: Comment) -> Comment:
        with self.sessions() as s:
            s.add(comment)
            self._commit(s, UnknownReference)
            s.refresh(comment)
            return comment

    # ---- statistics ----
    def count(self, model, *where) -> int:
        with self.sessions() as s:
            return int(s.exec(select(func.count()).select_from(model).where(*where)).one())

    def recent(self, model, limit: int) -> list:
        with self.sessions() as s:
            return list(s.exec(select(model).order_by(model.created_at.desc(), model.id.desc()).limit(limit)).all())

    def overdue_task_count(self, today: date) -> int:
        return self.count(Task, Task.due_date.is_not(None), Task.due_date < today, Task.status != TaskStatus.DONE.value)
