from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys; snake_case names still populate."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReadModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PageMeta(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class MessageResponse(CamelModel):
    status: int
    message: str


class DepartmentBrief(ReadModel):
    id: UUID
    name: str


class MemberBrief(ReadModel):
    id: UUID
    full_name: str
    email: str | None = None
    phone: str | None = None
    department_id: UUID | None = None


class RoleRead(ReadModel):
    id: UUID
    name: str
    description: str | None = None


class AccountBrief(ReadModel):
    id: UUID
    username: str
    avatar_url: str | None = None
    member: MemberBrief | None = None


class Timestamped(ReadModel):
    created_at: datetime | None = None
    updated_at: datetime | None = None
