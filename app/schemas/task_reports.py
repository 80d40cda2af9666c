from __future__ import annotations

from datetime import datetime
from uuid import UUID

from app.schemas.common import AccountBrief, CamelModel, Timestamped


class TaskReportCreate(CamelModel):
    task_id: UUID | None = None
    content: str | None = None
    progress: str | None = None
    period_type: str | None = None
    period_start: datetime | None = None
    period_end: datetime | None = None
    issues: str | None = None
    next_plan: str | None = None


class TaskReportUpdate(CamelModel):
    content: str | None = None
    progress: str | None = None
    period_type: str | None = None
    status: str | None = None
    issues: str | None = None
    next_plan: str | None = None


class TaskReportRead(Timestamped):
    id: UUID
    task_id: UUID
    reporter_account_id: UUID
    content: str
    progress: str
    period_type: str
    period_start: datetime | None = None
    period_end: datetime | None = None
    status: str
    issues: str | None = None
    next_plan: str | None = None
    reporter: AccountBrief | None = None
