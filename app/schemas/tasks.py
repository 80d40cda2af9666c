from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, field_validator

from app.schemas.common import AccountBrief, CamelModel, MemberBrief, ReadModel, Timestamped


class TaskCreate(CamelModel):
    project_id: UUID | None = None
    parent_task_id: UUID | None = None
    title: str | None = Field(default=None, max_length=200)
    description: str | None = None
    priority: str | None = None
    progress: int | str | None = None
    begin_date: datetime | None = None
    due_date: datetime | None = None
    member_ids: list[str] | None = None
    assigned_to: str | None = None


class TaskUpdate(CamelModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    status: str | None = None
    priority: str | None = None
    progress: int | str | None = None
    begin_date: datetime | None = None
    due_date: datetime | None = None
    parent_task_id: UUID | None = None
    member_ids: list[str] | None = None
    assigned_to: str | None = None
    reason: str | None = None


class TaskMemberRead(ReadModel):
    member_id: UUID
    role: str
    position: int
    member: MemberBrief | None = None


class LabelRead(ReadModel):
    id: UUID
    name: str
    color: str | None = None


class TaskLabelRead(ReadModel):
    label_id: UUID
    label: LabelRead


class ChecklistItemRead(Timestamped):
    id: UUID
    task_id: UUID
    content: str
    is_done: bool
    position: int


class AttachmentRead(ReadModel):
    id: UUID
    task_id: UUID
    file_name: str
    file_url: str
    mime_type: str | None = None
    size_bytes: int | None = None
    uploaded_by_account_id: UUID | None = None
    created_at: datetime | None = None


class CommentRead(Timestamped):
    id: UUID
    task_id: UUID
    account_id: UUID
    content: str
    account: AccountBrief | None = None


class SubtaskRead(ReadModel):
    id: UUID
    title: str
    status: str
    progress: int
    due_date: datetime | None = None


class TaskRead(Timestamped):
    id: UUID
    project_id: UUID
    parent_task_id: UUID | None = None
    title: str
    description: str | None = None
    status: str
    priority: str | None = None
    progress: int
    begin_date: datetime | None = None
    due_date: datetime | None = None
    completed_at: datetime | None = None
    assigned_member_id: UUID | None = None
    created_by_account_id: UUID | None = None
    members: list[TaskMemberRead] = []
    labels: list[TaskLabelRead] = []


class TaskDetail(TaskRead):
    checklist_items: list[ChecklistItemRead] = []
    attachments: list[AttachmentRead] = []
    comments: list[CommentRead] = []
    subtasks: list[SubtaskRead] = []

    @field_validator("attachments", "comments", "subtasks", mode="before")
    @classmethod
    def _drop_deleted(cls, value):
        return [item for item in value or [] if not getattr(item, "is_deleted", False)]


class ChecklistItemCreate(CamelModel):
    content: str | None = None


class ChecklistItemUpdate(CamelModel):
    content: str | None = None
    is_done: bool | None = None


class TaskLabelAdd(CamelModel):
    name: str | None = Field(default=None, max_length=80)
    color: str | None = Field(default=None, max_length=20)


class AttachmentCreate(CamelModel):
    file_name: str | None = Field(default=None, max_length=255)
    file_url: str | None = Field(default=None, max_length=1024)
    mime_type: str | None = None
    size_bytes: int | None = Field(default=None, ge=0)


class CommentCreate(CamelModel):
    content: str | None = None


class CommentUpdate(CamelModel):
    content: str | None = None
