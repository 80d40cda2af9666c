from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import computed_field

from app.schemas.common import AccountBrief, ReadModel
from app.services.audit import action_label


class SystemLogRead(ReadModel):
    id: UUID
    action: str
    actor_account_id: UUID | None = None
    actor: AccountBrief | None = None
    message: str
    target_type: str | None = None
    target_id: str | None = None
    ip_address: str | None = None
    created_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def action_label(self) -> str:
        return action_label(self.action)
