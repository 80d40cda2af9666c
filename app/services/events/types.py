"""Domain event types published after a primary commit."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


class EventType(enum.Enum):
    # Auth / accounts
    login = "login"
    login_failed = "login_failed"
    account_locked = "account_locked"
    password_changed = "password_changed"
    password_reset_requested = "password_reset_requested"
    password_reset = "password_reset"
    account_created = "account_created"
    account_updated = "account_updated"
    account_role_changed = "account_role_changed"
    account_status_changed = "account_status_changed"
    account_deleted = "account_deleted"
    account_restored = "account_restored"
    # Departments
    department_created = "department_created"
    department_updated = "department_updated"
    # Projects
    project_created = "project_created"
    project_updated = "project_updated"
    project_status_changed = "project_status_changed"
    project_deleted = "project_deleted"
    # Tasks
    task_created = "task_created"
    task_updated = "task_updated"
    task_status_changed = "task_status_changed"
    task_deadline_changed = "task_deadline_changed"
    task_members_changed = "task_members_changed"
    task_deleted = "task_deleted"
    # Task sub-resources
    checklist_item_added = "checklist_item_added"
    checklist_item_updated = "checklist_item_updated"
    checklist_item_deleted = "checklist_item_deleted"
    label_added = "label_added"
    label_removed = "label_removed"
    attachment_added = "attachment_added"
    attachment_deleted = "attachment_deleted"
    comment_added = "comment_added"
    comment_updated = "comment_updated"
    comment_deleted = "comment_deleted"
    task_report_created = "task_report_created"
    task_report_updated = "task_report_updated"
    task_report_deleted = "task_report_deleted"
    # Escalation
    escalated_to_leader = "escalated_to_leader"
    escalated_to_pmo = "escalated_to_pmo"


@dataclass
class Event:
    event_type: EventType
    payload: dict[str, Any]
    actor_account_id: uuid.UUID | None = None
    task_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None
    event_id: uuid.UUID = field(default_factory=uuid.uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))
