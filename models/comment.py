# models/comment.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from models.common import timestamp


class Comment(SQLModel, table=True):
    __tablename__ = "comments"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="tasks.id", index=True)
    # cleared when the author's account is deleted
    author_id: Optional[int] = Field(default=None, foreign_key="users.id")
    content: str
    created_at: datetime = timestamp()
    updated_at: datetime = timestamp()


class CommentCreate(SQLModel):
    content: str = Field(min_length=1, max_length=5000)

    @field_validator("content")
    @classmethod
    def _content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("content is required")
        return v
