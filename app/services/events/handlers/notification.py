"""Notification handler for the event system.

Translates workflow events into router calls. Exactly one router invocation
is made per event that has a notification mapping.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.services.common import try_uuid
from app.services.events.types import Event, EventType
from app.services.notifications import (
    NotificationRouter,
    NotificationType,
    RoutingContext,
    notification_type_for_status,
)

logger = logging.getLogger(__name__)

# Events whose notification type does not depend on the payload.
EVENT_TYPE_TO_NOTIFICATION = {
    EventType.task_created: NotificationType.task_assigned,
    EventType.task_members_changed: NotificationType.task_assigned,
    EventType.task_deadline_changed: NotificationType.deadline_changed,
    EventType.comment_added: NotificationType.comment_new,
    EventType.attachment_added: NotificationType.file_attached,
    EventType.label_added: NotificationType.label_added,
    EventType.project_created: NotificationType.project_created,
    EventType.account_created: NotificationType.user_added,
    EventType.account_locked: NotificationType.login_failed_alert,
    EventType.escalated_to_leader: NotificationType.escalate_to_leader,
    EventType.escalated_to_pmo: NotificationType.escalate_to_pmo,
}

PROJECT_STATUS_TO_NOTIFICATION = {
    "approved": NotificationType.project_director_approved,
    "rejected": NotificationType.project_director_rejected,
    "closed": NotificationType.project_closed,
}


def _context_from_event(event: Event) -> RoutingContext:
    payload = event.payload
    return RoutingContext(
        task_id=event.task_id,
        project_id=event.project_id,
        department_id=try_uuid(payload.get("department_id")),
        task_title=payload.get("task_title"),
        project_name=payload.get("project_name"),
        actor_name=payload.get("actor_name"),
        status=payload.get("status"),
        reason=payload.get("reason"),
        message=payload.get("message"),
        label_name=payload.get("label_name"),
        username=payload.get("username"),
        member_ids=[member_id for member_id in map(try_uuid, payload.get("member_ids") or []) if member_id],
    )


class NotificationHandler:
    """Handler that fans workflow events out to in-app notifications."""

    def __init__(self, router: NotificationRouter):
        self.router = router

    def resolve_type(self, event: Event) -> NotificationType | None:
        if event.event_type == EventType.task_status_changed:
            return notification_type_for_status(event.payload.get("status"))
        if event.event_type == EventType.project_status_changed:
            return PROJECT_STATUS_TO_NOTIFICATION.get(event.payload.get("status"))
        return EVENT_TYPE_TO_NOTIFICATION.get(event.event_type)

    def handle(self, db: Session, event: Event) -> None:
        notification_type = self.resolve_type(event)
        if notification_type is None:
            return
        self.router.notify(db, notification_type, event.actor_account_id, _context_from_event(event))
