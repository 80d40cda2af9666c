from __future__ import annotations

from uuid import UUID

from app.schemas.common import CamelModel


class EscalateToLeader(CamelModel):
    task_id: UUID | None = None
    message: str | None = None


class EscalateToPmo(CamelModel):
    task_id: UUID | None = None
    project_id: UUID | None = None
    message: str | None = None
