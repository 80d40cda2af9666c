"""Keep a task's member set and its legacy primary assignee in step."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.orm import Session

from app.errors import NotFoundError, ValidationError
from app.models.organization import Member
from app.models.projects import Task, TaskMember, TaskMemberRole
from app.services.common import coerce_uuid

logger = logging.getLogger(__name__)


def normalize_member_ids(member_ids) -> list[uuid.UUID]:
    seen: set[uuid.UUID] = set()
    normalized: list[uuid.UUID] = []
    for raw in member_ids or []:
        if raw is None or raw == "":
            continue
        try:
            coerced = coerce_uuid(raw)
        except ValidationError as exc:
            raise NotFoundError("One or more members not found") from exc
        if coerced not in seen:
            seen.add(coerced)
            normalized.append(coerced)
    return normalized


def load_members(db: Session, member_ids: list[uuid.UUID]) -> list[Member]:
    """Fetch members in the given order; all must exist and not be soft-deleted."""
    if not member_ids:
        return []
    rows = (
        db.query(Member)
        .filter(Member.id.in_(member_ids))
        .filter(Member.is_deleted.is_(False))
        .all()
    )
    by_id = {member.id: member for member in rows}
    if len(by_id) != len(member_ids):
        raise NotFoundError("One or more members not found")
    return [by_id[member_id] for member_id in member_ids]


def set_assignees(
    db: Session,
    task: Task,
    member_ids,
    added_by_account_id: uuid.UUID | None = None,
) -> list[uuid.UUID]:
    """Replace the task's members with ``member_ids``.

    The first id becomes the "lead" and is mirrored into
    ``task.assigned_member_id``. Flushes but does not commit; validation
    happens before any row is touched.
    """
    normalized = normalize_member_ids(member_ids)
    load_members(db, normalized)

    previous = {row.member_id for row in task.members}
    for row in list(task.members):
        task.members.remove(row)
    db.flush()

    for position, member_id in enumerate(normalized):
        task.members.append(
            TaskMember(
                member_id=member_id,
                role=TaskMemberRole.lead.value if position == 0 else TaskMemberRole.member.value,
                position=position,
                added_by_account_id=added_by_account_id,
            )
        )
    task.assigned_member_id = normalized[0] if normalized else None
    db.flush()
    logger.debug(
        "task_assignees_replaced task_id=%s count=%s added=%s",
        task.id,
        len(normalized),
        len(set(normalized) - previous),
    )
    return [member_id for member_id in normalized if member_id not in previous]


def member_ids_of(task: Task) -> list[uuid.UUID]:
    return [row.member_id for row in sorted(task.members, key=lambda row: row.position)]


def is_assignee(task: Task, member_id: uuid.UUID | None) -> bool:
    if member_id is None:
        return False
    return any(row.member_id == member_id for row in task.members)
