# services/cascade.py
"""Ordered cascade plans for deletes.

A plan is a list of named steps. Each step runs and commits in its own
session, in order. There is no transaction across steps: if one fails the
earlier steps stay applied and the rest are skipped. Every step is written so
that running the whole plan again finishes the job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from models import Comment, Project, ProjectMember, Task, User
from models.project_member import MemberRole
from services.errors import CrewboardError, Unavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeStep:
    name: str
    apply: Callable[[Session], int]


@dataclass
class CascadePlan:
    target: str
    steps: List[CascadeStep]

    @property
    def names(self) -> List[str]:
        return [step.name for step in self.steps]


@dataclass
class CascadeReport:
    target: str
    completed: List[str] = field(default_factory=list)
    affected: dict = field(default_factory=dict)
    failed: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.failed is None


class CascadeIncomplete(Unavailable):
    default_message = "Delete did not finish; retry to complete it"

    def __init__(self, report: CascadeReport):
        super().__init__()
        self.report = report


def _delete_rows(stmt) -> Callable[[Session], int]:
    def apply(s: Session) -> int:
        rows = s.exec(stmt).all()
        for row in rows:
            s.delete(row)
        return len(rows)
    return apply


def _set_on_rows(stmt, **values) -> Callable[[Session], int]:
    def apply(s: Session) -> int:
        rows = s.exec(stmt).all()
        for row in rows:
            for name, value in values.items():
                setattr(row, name, value)
            s.add(row)
        return len(rows)
    return apply


def task_delete_plan(task_id: int) -> CascadePlan:
    return CascadePlan(f"task:{task_id}", [
        CascadeStep("delete_comments", _delete_rows(select(Comment).where(Comment.task_id == task_id))),
        CascadeStep("delete_task", _delete_rows(select(Task).where(Task.id == task_id))),
    ])


def project_delete_plan(project_id: int) -> CascadePlan:
    task_ids = select(Task.id).where(Task.project_id == project_id)
    return CascadePlan(f"project:{project_id}", [
        CascadeStep("delete_task_comments", _delete_rows(select(Comment).where(Comment.task_id.in_(task_ids)))),
        CascadeStep("delete_tasks", _delete_rows(select(Task).where(Task.project_id == project_id))),
        CascadeStep("delete_memberships", _delete_rows(select(ProjectMember).where(ProjectMember.project_id == project_id))),
        CascadeStep("delete_project", _delete_rows(select(Project).where(Project.id == project_id))),
    ])


def _transfer_ownership(user_id: int, new_owner_id: int) -> Callable[[Session], int]:
    def apply(s: Session) -> int:
        projects = s.exec(select(Project).where(Project.owner_id == user_id)).all()
        for p in projects:
            p.owner_id = new_owner_id
            s.add(p)
            existing = s.exec(
                select(ProjectMember).where(ProjectMember.project_id == p.id, ProjectMember.user_id == new_owner_id)
            ).first()
            if existing is None:
                s.add(ProjectMember(project_id=p.id, user_id=new_owner_id, role=MemberRole.MANAGER.value))
        return len(projects)
    return apply


def user_delete_plan(user_id: int, actor_id: int) -> CascadePlan:
    """Strip the user from every reference, then delete the account.

    Reported tasks and owned projects pass to ``actor_id``, the admin
    performing the delete.
    """
    return CascadePlan(f"user:{user_id}", [
        CascadeStep("remove_memberships", _delete_rows(select(ProjectMember).where(ProjectMember.user_id == user_id))),
        CascadeStep("clear_assignee", _set_on_rows(select(Task).where(Task.assignee_id == user_id), assignee_id=None)),
        CascadeStep("reassign_reporter", _set_on_rows(select(Task).where(Task.reporter_id == user_id), reporter_id=actor_id)),
        CascadeStep("transfer_ownership", _transfer_ownership(user_id, actor_id)),
        CascadeStep("clear_comment_author", _set_on_rows(select(Comment).where(Comment.author_id == user_id), author_id=None)),
        CascadeStep("delete_user", _delete_rows(select(User).where(User.id == user_id))),
    ])


def run_plan(plan: CascadePlan, sessions) -> CascadeReport:
    """Apply each step in order; raise ``CascadeIncomplete`` at the first failure."""
    report = CascadeReport(plan.target)
    for step in plan.steps:
        try:
            with sessions() as s:
                count = step.apply(s)
                s.commit()
        except (SQLAlchemyError, CrewboardError) as exc:
            report.failed = step.name
            logger.warning(
                "Cascade for %s stopped at %s (%s); completed steps: %s",
                plan.target, step.name, type(exc).__name__, report.completed or "none",
            )
            raise CascadeIncomplete(report) from exc
        report.completed.append(step.name)
        report.affected[step.name] = count
        logger.info("Cascade %s: %s affected %d row(s)", plan.target, step.name, count)
    return report
