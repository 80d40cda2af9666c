"""System log: append-only audit trail and its role-scoped query."""

from __future__ import annotations

import enum
import logging
import uuid
from datetime import datetime

from sqlalchemy.orm import Session, selectinload

from app.errors import ValidationError
from app.metrics import AUDIT_FAILURES
from app.models.audit import SystemLog
from app.models.auth import Account
from app.services.common import clamp_page, page_meta, try_uuid
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import RoleTag

logger = logging.getLogger(__name__)


class LogAction(enum.Enum):
    # Authentication
    login = "login"
    logout = "logout"
    login_failed = "login_failed"
    account_locked = "account_locked"
    password_reset_request = "password_reset_request"
    password_reset = "password_reset"
    password_change = "password_change"
    # Accounts
    user_create = "user_create"
    user_update = "user_update"
    user_delete = "user_delete"
    user_restore = "user_restore"
    user_status_change = "user_status_change"
    role_change = "role_change"
    # Projects
    create_project = "create_project"
    update_project = "update_project"
    delete_project = "delete_project"
    project_status_change = "project_status_change"
    # Tasks
    task_create = "task_create"
    task_update = "task_update"
    task_delete = "task_delete"
    task_status_change = "task_status_change"
    task_assign = "task_assign"
    task_complete = "task_complete"
    checklist_add = "checklist_add"
    checklist_update = "checklist_update"
    checklist_delete = "checklist_delete"
    label_add = "label_add"
    label_remove = "label_remove"
    attachment_add = "attachment_add"
    attachment_delete = "attachment_delete"
    comment_add = "comment_add"
    comment_update = "comment_update"
    comment_delete = "comment_delete"
    task_report_create = "task_report_create"
    task_report_update = "task_report_update"
    task_report_delete = "task_report_delete"
    escalation = "escalation"
    # Configuration
    department_create = "department_create"
    department_update = "department_update"
    config_change = "config_change"
    unknown = "unknown"


ACTION_LABELS: dict[LogAction, str] = {
    LogAction.login: "Đăng nhập",
    LogAction.logout: "Đăng xuất",
    LogAction.login_failed: "Đăng nhập thất bại",
    LogAction.account_locked: "Khóa tài khoản tạm thời",
    LogAction.password_reset_request: "Yêu cầu đặt lại mật khẩu",
    LogAction.password_reset: "Đặt lại mật khẩu",
    LogAction.password_change: "Đổi mật khẩu",
    LogAction.user_create: "Tạo người dùng",
    LogAction.user_update: "Cập nhật người dùng",
    LogAction.user_delete: "Xóa người dùng",
    LogAction.user_restore: "Khôi phục người dùng",
    LogAction.user_status_change: "Thay đổi trạng thái người dùng",
    LogAction.role_change: "Thay đổi vai trò",
    LogAction.create_project: "Tạo dự án",
    LogAction.update_project: "Cập nhật dự án",
    LogAction.delete_project: "Xóa dự án",
    LogAction.project_status_change: "Thay đổi trạng thái dự án",
    LogAction.task_create: "Tạo công việc",
    LogAction.task_update: "Cập nhật công việc",
    LogAction.task_delete: "Xóa công việc",
    LogAction.task_status_change: "Thay đổi trạng thái công việc",
    LogAction.task_assign: "Giao công việc",
    LogAction.task_complete: "Hoàn thành công việc",
    LogAction.checklist_add: "Thêm checklist",
    LogAction.checklist_update: "Cập nhật checklist",
    LogAction.checklist_delete: "Xóa checklist",
    LogAction.label_add: "Gắn nhãn",
    LogAction.label_remove: "Gỡ nhãn",
    LogAction.attachment_add: "Thêm đính kèm",
    LogAction.attachment_delete: "Xóa đính kèm",
    LogAction.comment_add: "Thêm bình luận",
    LogAction.comment_update: "Sửa bình luận",
    LogAction.comment_delete: "Xóa bình luận",
    LogAction.task_report_create: "Tạo báo cáo công việc",
    LogAction.task_report_update: "Cập nhật báo cáo công việc",
    LogAction.task_report_delete: "Xóa báo cáo công việc",
    LogAction.escalation: "Báo cáo vượt cấp",
    LogAction.department_create: "Tạo phòng ban",
    LogAction.department_update: "Cập nhật phòng ban",
    LogAction.config_change: "Thay đổi cấu hình",
    LogAction.unknown: "Không xác định",
}


def coerce_action(action: LogAction | str) -> LogAction:
    if isinstance(action, LogAction):
        return action
    try:
        return LogAction(str(action))
    except ValueError:
        logger.warning("audit_unknown_action action=%s", action)
        return LogAction.unknown


def action_label(action: LogAction | str) -> str:
    return ACTION_LABELS[coerce_action(action)]


class AuditLogger:
    """Best-effort writer; a failed write never reaches the caller."""

    def log(
        self,
        db: Session,
        action: LogAction | str,
        actor_account_id: uuid.UUID | None,
        message: str,
        target_type: str | None = None,
        target_id=None,
        ip_address: str | None = None,
        commit: bool = True,
    ) -> SystemLog | None:
        resolved = coerce_action(action)
        try:
            entry = SystemLog(
                action=resolved.value,
                actor_account_id=actor_account_id,
                message=message,
                target_type=target_type,
                target_id=str(target_id) if target_id is not None else None,
                ip_address=ip_address,
            )
            db.add(entry)
            if commit:
                db.commit()
            else:
                db.flush()
            logger.info("system_log action=%s actor=%s target=%s:%s", resolved.value, actor_account_id, target_type, target_id)
            return entry
        except Exception:
            db.rollback()
            AUDIT_FAILURES.inc()
            logger.exception("system_log_failed action=%s actor=%s", resolved.value, actor_account_id)
            return None


audit_logger = AuditLogger()


def _parse_date(value: str | datetime | None, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(f"{field} không hợp lệ: {value}") from exc


class SystemLogs:
    @staticmethod
    @service_boundary
    def list(
        db: Session,
        identity,
        page: int = 1,
        limit: int = 20,
        action: str | None = None,
        actor_id: str | None = None,
        target_id: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> ServiceResult:
        page, limit = clamp_page(page, limit)
        query = db.query(SystemLog)
        if action and action != "all":
            query = query.filter(SystemLog.action == action)
        start = _parse_date(start_date, "startDate")
        end = _parse_date(end_date, "endDate")
        if start is not None:
            query = query.filter(SystemLog.created_at >= start)
        if end is not None:
            query = query.filter(SystemLog.created_at <= end)
        if target_id:
            query = query.filter(SystemLog.target_id == str(target_id))
        if identity.role != RoleTag.admin:
            query = query.filter(SystemLog.actor_account_id == identity.account_id)
        elif actor_id:
            query = query.filter(SystemLog.actor_account_id == try_uuid(actor_id))
        total = query.count()
        logs = (
            query.options(selectinload(SystemLog.actor).selectinload(Account.member))
            .order_by(SystemLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return ServiceResult.ok(logs, pagination=page_meta(page, limit, total))

    @staticmethod
    def action_types() -> ServiceResult:
        return ServiceResult.ok(
            [
                {"key": action.name.upper(), "value": action.value, "label": ACTION_LABELS[action]}
                for action in LogAction
                if action != LogAction.unknown
            ]
        )


system_logs = SystemLogs()
