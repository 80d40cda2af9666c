import enum
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query, Session

from app.errors import NotFoundError, ValidationError


def now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a stored datetime; SQLite hands back naive values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def coerce_uuid(value: Any) -> uuid.UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError) as exc:
        raise ValidationError(f"Invalid id: {value}") from exc


def try_uuid(value: Any) -> uuid.UUID | None:
    try:
        return coerce_uuid(value)
    except ValidationError:
        return None


def ensure_exists(db: Session, model, value: Any, detail: str):
    entity_id = try_uuid(value)
    entity = db.get(model, entity_id) if entity_id else None
    if entity is None or getattr(entity, "is_deleted", False):
        raise NotFoundError(detail)
    return entity


def validate_enum(value: str, enum_cls: type[enum.Enum], field: str) -> enum.Enum:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}") from exc


def apply_ordering(query: Query, order_by: str, order_dir: str, allowed: dict[str, Any]) -> Query:
    if order_by not in allowed:
        raise ValidationError("Invalid order_by")
    column = allowed[order_by]
    if order_dir == "asc":
        return query.order_by(asc(column))
    return query.order_by(desc(column))


def apply_pagination(query: Query, limit: int, offset: int) -> Query:
    return query.limit(limit).offset(offset)


def page_meta(page: int, limit: int, total: int) -> dict[str, int]:
    total_pages = (total + limit - 1) // limit if limit else 0
    return {"page": page, "limit": limit, "total": total, "totalPages": total_pages}


def clamp_page(page: int | None, limit: int | None, default_limit: int = 20, max_limit: int = 200) -> tuple[int, int]:
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else default_limit
    return page, min(limit, max_limit)
