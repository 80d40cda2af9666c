from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field, model_validator

from app.schemas.common import CamelModel, DepartmentBrief, Timestamped


class ProjectCreate(CamelModel):
    # Required fields are checked by the service so the error message stays uniform.
    name: str | None = Field(default=None, max_length=200)
    description: str | None = None
    department_id: UUID | None = None
    status: str | None = None
    begin_date: datetime | None = None
    end_date: datetime | None = None


class ProjectUpdate(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    department_id: UUID | None = None
    status: str | None = None
    begin_date: datetime | None = None
    end_date: datetime | None = None
    reason: str | None = None

    @model_validator(mode="after")
    def _validate_dates(self) -> ProjectUpdate:
        if self.begin_date and self.end_date:
            if self.begin_date > self.end_date:
                raise ValueError("beginDate must not be after endDate")
        return self


class ProjectRead(Timestamped):
    id: UUID
    name: str
    description: str | None = None
    department_id: UUID | None = None
    department: DepartmentBrief | None = None
    status: str
    begin_date: datetime | None = None
    end_date: datetime | None = None
    created_by_account_id: UUID | None = None
