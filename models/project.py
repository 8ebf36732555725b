# models/project.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import field_validator
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from models.common import timestamp, unique_strings
from utils.keys import normalize_key


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class Visibility(str, Enum):
    PRIVATE = "private"
    TEAM = "team"
    PUBLIC = "public"


class Project(SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(index=True, unique=True, max_length=10)
    name: str = Field(index=True)
    description: str = ""
    status: str = Field(default=ProjectStatus.ACTIVE.value)
    visibility: str = Field(default=Visibility.PRIVATE.value)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    owner_id: int = Field(foreign_key="users.id", index=True)
    created_at: datetime = timestamp()
    updated_at: datetime = timestamp()


class ProjectCreate(SQLModel):
    name: str = Field(min_length=1, max_length=120)
    key: Optional[str] = None
    description: str = ""
    status: ProjectStatus = ProjectStatus.ACTIVE
    visibility: Visibility = Visibility.PRIVATE
    tags: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("key")
    @classmethod
    def _key(cls, v: Optional[str]) -> Optional[str]:
        return normalize_key(v) if v else None

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: List[str]) -> List[str]:
        return unique_strings(v)


class ProjectUpdate(SQLModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    key: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    visibility: Optional[Visibility] = None
    tags: Optional[List[str]] = None

    @field_validator("key")
    @classmethod
    def _key(cls, v: Optional[str]) -> Optional[str]:
        return normalize_key(v) if v else None

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return unique_strings(v) if v is not None else None
