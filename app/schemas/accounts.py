from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.schemas.common import CamelModel, MemberBrief, ReadModel, RoleRead, Timestamped


class AccountCreate(CamelModel):
    username: str | None = Field(default=None, max_length=80)
    password: str | None = None
    email: str | None = Field(default=None, max_length=255)
    role_id: UUID | None = None
    member_id: UUID | None = None
    full_name: str | None = Field(default=None, max_length=160)
    phone: str | None = Field(default=None, max_length=40)
    department_id: UUID | None = None


class AccountUpdate(CamelModel):
    email: str | None = Field(default=None, max_length=255)
    role_id: UUID | None = None
    member_id: UUID | None = None
    avatar_url: str | None = Field(default=None, max_length=512)


class AccountStatusUpdate(CamelModel):
    status: str


class AccountRead(Timestamped):
    id: UUID
    username: str
    email: str | None = None
    status: str
    avatar_url: str | None = None
    role_id: UUID | None = None
    role: RoleRead | None = None
    member_id: UUID | None = None
    member: MemberBrief | None = None
    last_login_at: datetime | None = None
    last_seen_at: datetime | None = None
    is_deleted: bool = False


class DepartmentCreate(CamelModel):
    name: str | None = Field(default=None, max_length=160)
    description: str | None = None
    parent_id: UUID | None = None


class DepartmentUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=160)
    description: str | None = None
    parent_id: UUID | None = None


class DepartmentRead(ReadModel):
    id: UUID
    name: str
    description: str | None = None
    parent_id: UUID | None = None
