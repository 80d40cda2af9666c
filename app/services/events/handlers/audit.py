"""Audit handler: one system log entry per logged event."""

from __future__ import annotations

from sqlalchemy.orm import Session

from app.services.audit import ACTION_LABELS, AuditLogger, LogAction
from app.services.events.types import Event, EventType

EVENT_TYPE_TO_ACTION = {
    EventType.login: LogAction.login,
    EventType.login_failed: LogAction.login_failed,
    EventType.account_locked: LogAction.account_locked,
    EventType.password_changed: LogAction.password_change,
    EventType.password_reset_requested: LogAction.password_reset_request,
    EventType.password_reset: LogAction.password_reset,
    EventType.account_created: LogAction.user_create,
    EventType.account_updated: LogAction.user_update,
    EventType.account_role_changed: LogAction.role_change,
    EventType.account_status_changed: LogAction.user_status_change,
    EventType.account_deleted: LogAction.user_delete,
    EventType.account_restored: LogAction.user_restore,
    EventType.department_created: LogAction.department_create,
    EventType.department_updated: LogAction.department_update,
    EventType.project_created: LogAction.create_project,
    EventType.project_updated: LogAction.update_project,
    EventType.project_status_changed: LogAction.project_status_change,
    EventType.project_deleted: LogAction.delete_project,
    EventType.task_created: LogAction.task_create,
    EventType.task_updated: LogAction.task_update,
    EventType.task_status_changed: LogAction.task_status_change,
    EventType.task_members_changed: LogAction.task_assign,
    EventType.task_deleted: LogAction.task_delete,
    EventType.checklist_item_added: LogAction.checklist_add,
    EventType.checklist_item_updated: LogAction.checklist_update,
    EventType.checklist_item_deleted: LogAction.checklist_delete,
    EventType.label_added: LogAction.label_add,
    EventType.label_removed: LogAction.label_remove,
    EventType.attachment_added: LogAction.attachment_add,
    EventType.attachment_deleted: LogAction.attachment_delete,
    EventType.comment_added: LogAction.comment_add,
    EventType.comment_updated: LogAction.comment_update,
    EventType.comment_deleted: LogAction.comment_delete,
    EventType.task_report_created: LogAction.task_report_create,
    EventType.task_report_updated: LogAction.task_report_update,
    EventType.task_report_deleted: LogAction.task_report_delete,
    EventType.escalated_to_leader: LogAction.escalation,
    EventType.escalated_to_pmo: LogAction.escalation,
}


class AuditHandler:
    def __init__(self, audit_logger: AuditLogger):
        self.audit_logger = audit_logger

    def handle(self, db: Session, event: Event) -> None:
        action = EVENT_TYPE_TO_ACTION.get(event.event_type)
        if action is None:
            return
        payload = event.payload
        target_type = payload.get("target_type")
        target_id = payload.get("target_id")
        if target_id is None:
            if event.task_id is not None:
                target_type, target_id = target_type or "task", event.task_id
            elif event.project_id is not None:
                target_type, target_id = target_type or "project", event.project_id
        self.audit_logger.log(
            db,
            action,
            event.actor_account_id,
            payload.get("log_message") or ACTION_LABELS[action],
            target_type=target_type,
            target_id=target_id,
            ip_address=payload.get("ip_address"),
            commit=False,
        )
