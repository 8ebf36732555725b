# models/project_member.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import field_validator, model_validator
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from models.common import normalize_email, timestamp


class MemberRole(str, Enum):
    MANAGER = "manager"
    DEVELOPER = "developer"
    MEMBER = "member"


class ProjectMember(SQLModel, table=True):
    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_user"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    role: str = Field(default=MemberRole.MEMBER.value)
    joined_at: datetime = timestamp()


class MemberAdd(SQLModel):
    user_id: Optional[int] = None
    email: Optional[str] = None
    role: MemberRole = MemberRole.MEMBER

    @field_validator("email")
    @classmethod
    def _email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v) if v else None

    @model_validator(mode="after")
    def _one_reference(self):
        if self.user_id is None and not self.email:
            raise ValueError("user_id or email is required")
        return self


class MemberRemove(SQLModel):
    user_id: int
