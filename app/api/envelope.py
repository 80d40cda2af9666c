"""Render a ``ServiceResult`` as the JSON envelope every route returns."""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.services.result import ServiceResult


def serialize(data: Any, schema: type[BaseModel] | None = None) -> Any:
    """ORM rows go through ``schema``; dicts are already wire-shaped (cached data)."""
    if schema is None or data is None or isinstance(data, dict):
        return data
    if isinstance(data, list):
        return [serialize(item, schema) for item in data]
    return schema.model_validate(data, from_attributes=True).model_dump(mode="json", by_alias=True)


def respond(result: ServiceResult, schema: type[BaseModel] | None = None) -> JSONResponse:
    if result.is_success:
        result.data = serialize(result.data, schema)
    return JSONResponse(status_code=result.status, content=result.to_envelope())
