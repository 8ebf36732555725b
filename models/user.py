# models/user.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from models.common import normalize_email, timestamp


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = {"extend_existing": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    avatar: Optional[str] = None
    role: str = Field(default=UserRole.USER.value)
    is_active: bool = Field(default=True)
    password_hash: str
    created_at: datetime = timestamp()
    updated_at: datetime = timestamp()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class Registration(SQLModel):
    name: str = Field(min_length=1, max_length=120)
    email: str
    password: str
    avatar: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v


class ProfileUpdate(SQLModel):
    """Fields a user may change on their own account."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    email: Optional[str] = None
    avatar: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v) if v is not None else None


class UserUpdate(ProfileUpdate):
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class PasswordChange(SQLModel):
    current_password: str
    new_password: str


SELF_EDITABLE_FIELDS = frozenset(ProfileUpdate.model_fields)
