from __future__ import annotations

from datetime import datetime
from uuid import UUID

from app.schemas.common import AccountBrief, ReadModel


class NotificationRead(ReadModel):
    id: UUID
    type: str
    message: str
    recipient_account_id: UUID
    sender_account_id: UUID | None = None
    sender: AccountBrief | None = None
    task_id: UUID | None = None
    project_id: UUID | None = None
    is_read: bool
    created_at: datetime | None = None
