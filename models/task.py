# models/task.py
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from models.common import parse_date, timestamp, unique_strings


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    REVIEW = "review"
    DONE = "done"


class TaskPriority(str, Enum):
    LOWEST = "lowest"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    HIGHEST = "highest"


class TaskType(str, Enum):
    STORY = "story"
    TASK = "task"
    BUG = "bug"
    EPIC = "epic"


STATUS_ORDER = [s.value for s in TaskStatus]


class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    title: str
    description: str = ""
    status: str = Field(default=TaskStatus.TODO.value, index=True)
    priority: str = Field(default=TaskPriority.MEDIUM.value)
    type: str = Field(default=TaskType.TASK.value)
    assignee_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True)
    reporter_id: int = Field(foreign_key="users.id", index=True)
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    labels: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = timestamp()
    updated_at: datetime = timestamp()


class _TaskFields(SQLModel):
    @field_validator("due_date", mode="before", check_fields=False)
    @classmethod
    def _due(cls, v):
        return parse_date(v)

    @field_validator("labels", check_fields=False)
    @classmethod
    def _labels(cls, v):
        return unique_strings(v) if v is not None else None

    @field_validator("title", check_fields=False)
    @classmethod
    def _title(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("title is required")
        return v


class TaskCreate(_TaskFields):
    project: int
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    type: TaskType = TaskType.TASK
    assignee: Optional[int] = None
    reporter: Optional[int] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    labels: List[str] = Field(default_factory=list)


class TaskUpdate(_TaskFields):
    project: Optional[int] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    type: Optional[TaskType] = None
    assignee: Optional[int] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    labels: Optional[List[str]] = None
