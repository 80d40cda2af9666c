"""Notification routing and the per-account notification inbox.

The router turns a workflow event into notification rows for the accounts
that should see it. Recipients are resolved by role (optionally limited to a
department) or from the task's members; the triggering actor is always
dropped. Routing failures are logged and swallowed.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from sqlalchemy.orm import Session, selectinload

from app.errors import NotFoundError
from app.metrics import NOTIFICATION_FAILURES, NOTIFICATIONS_CREATED
from app.models.auth import Account, AccountStatus
from app.models.notification import Notification
from app.models.organization import Member, Role
from app.models.projects import TaskMember
from app.services.common import clamp_page, page_meta, try_uuid
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import RoleTag, normalize_role
from app.services.workflow import COMPLETION_STATUSES, REVIEW_STATUSES, normalize_status, status_label

logger = logging.getLogger(__name__)


class NotificationType(enum.Enum):
    # Task workflow
    task_assigned = "task_assigned"
    task_approved = "task_approved"
    task_rejected = "task_rejected"
    task_returned = "task_returned"
    task_submitted = "task_submitted"
    task_completed = "task_completed"
    task_late = "task_late"
    status_changed = "status_changed"
    deadline_changed = "deadline_changed"
    # Review workflow
    review_requested = "review_requested"
    review_completed = "review_completed"
    feedback_given = "feedback_given"
    # Escalation
    escalate_to_leader = "escalate_to_leader"
    escalate_to_pmo = "escalate_to_pmo"
    escalate_resolved = "escalate_resolved"
    # Project workflow
    project_needs_approval = "project_needs_approval"
    project_director_approved = "project_director_approved"
    project_director_rejected = "project_director_rejected"
    project_assigned = "project_assigned"
    project_accepted = "project_accepted"
    project_closed = "project_closed"
    project_created = "project_created"
    project_approved = "project_approved"
    # Workload / KPI alerts
    workload_overload = "workload_overload"
    workload_changed = "workload_changed"
    kpi_alert = "kpi_alert"
    budget_exceeded = "budget_exceeded"
    progress_report = "progress_report"
    # Interaction
    comment_new = "comment_new"
    file_attached = "file_attached"
    label_added = "label_added"
    mention = "mention"
    # System
    system_alert = "system_alert"
    system_error = "system_error"
    user_added = "user_added"
    login_failed_alert = "login_failed_alert"


# Intended audience per type, for documentation and admin tooling.
NOTIFICATION_ROLE_MAP: dict[NotificationType, tuple[RoleTag, ...]] = {
    NotificationType.task_assigned: (RoleTag.staff,),
    NotificationType.task_approved: (RoleTag.staff,),
    NotificationType.task_rejected: (RoleTag.staff,),
    NotificationType.task_returned: (RoleTag.staff,),
    NotificationType.task_submitted: (RoleTag.leader,),
    NotificationType.task_completed: (RoleTag.leader,),
    NotificationType.task_late: (RoleTag.leader, RoleTag.pmo),
    NotificationType.status_changed: (RoleTag.staff, RoleTag.leader),
    NotificationType.deadline_changed: (RoleTag.staff,),
    NotificationType.review_requested: (RoleTag.leader,),
    NotificationType.review_completed: (RoleTag.staff,),
    NotificationType.feedback_given: (RoleTag.staff,),
    NotificationType.escalate_to_leader: (RoleTag.leader,),
    NotificationType.escalate_to_pmo: (RoleTag.pmo,),
    NotificationType.escalate_resolved: (RoleTag.staff, RoleTag.leader),
    NotificationType.project_needs_approval: (RoleTag.director,),
    NotificationType.project_director_approved: (RoleTag.pmo, RoleTag.leader),
    NotificationType.project_director_rejected: (RoleTag.pmo,),
    NotificationType.project_assigned: (RoleTag.leader,),
    NotificationType.project_accepted: (RoleTag.pmo,),
    NotificationType.project_closed: (RoleTag.director, RoleTag.leader),
    NotificationType.project_created: (RoleTag.director, RoleTag.admin),
    NotificationType.project_approved: (RoleTag.pmo,),
    NotificationType.workload_overload: (RoleTag.pmo,),
    NotificationType.workload_changed: (RoleTag.staff, RoleTag.leader),
    NotificationType.kpi_alert: (RoleTag.director,),
    NotificationType.budget_exceeded: (RoleTag.director,),
    NotificationType.progress_report: (RoleTag.director,),
    NotificationType.comment_new: (RoleTag.staff, RoleTag.leader),
    NotificationType.file_attached: (RoleTag.staff, RoleTag.leader),
    NotificationType.label_added: (RoleTag.staff, RoleTag.leader),
    NotificationType.mention: (RoleTag.staff, RoleTag.leader, RoleTag.pmo, RoleTag.director),
    NotificationType.system_alert: (RoleTag.admin,),
    NotificationType.system_error: (RoleTag.admin,),
    NotificationType.user_added: (RoleTag.admin,),
    NotificationType.login_failed_alert: (RoleTag.admin,),
}


@dataclass
class RoutingContext:
    task_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None
    department_id: uuid.UUID | None = None
    task_title: str | None = None
    project_name: str | None = None
    actor_name: str | None = None
    status: str | None = None
    reason: str | None = None
    message: str | None = None
    label_name: str | None = None
    username: str | None = None
    member_ids: list[uuid.UUID] = field(default_factory=list)


MESSAGE_TEMPLATES: dict[NotificationType, Callable[[RoutingContext], str]] = {
    NotificationType.task_assigned: lambda c: f'Bạn được giao công việc mới: "{c.task_title}"',
    NotificationType.review_requested: lambda c: f'{c.actor_name} yêu cầu duyệt công việc "{c.task_title}"',
    NotificationType.review_completed: lambda c: f'Công việc "{c.task_title}" đã được duyệt',
    NotificationType.task_approved: lambda c: f'Công việc "{c.task_title}" đã được duyệt',
    NotificationType.feedback_given: lambda c: f'{c.actor_name} đã phản hồi công việc "{c.task_title}"',
    NotificationType.task_rejected: lambda c: f'Công việc "{c.task_title}" bị từ chối: {c.reason or "Cần sửa lại"}',
    NotificationType.task_returned: lambda c: f'Công việc "{c.task_title}" được trả lại để chỉnh sửa',
    NotificationType.task_submitted: lambda c: f'Công việc "{c.task_title}" đang chờ duyệt.',
    NotificationType.task_completed: lambda c: f'{c.actor_name} đã hoàn thành công việc "{c.task_title}"',
    NotificationType.status_changed: (
        lambda c: f'Trạng thái công việc "{c.task_title}" đã đổi thành {status_label(c.status)}'
    ),
    NotificationType.deadline_changed: lambda c: f'Thời hạn công việc "{c.task_title}" đã thay đổi.',
    NotificationType.escalate_to_leader: (
        lambda c: f'{c.actor_name} cần hỗ trợ với công việc "{c.task_title}": {c.message}'
    ),
    NotificationType.escalate_to_pmo: lambda c: f"{c.actor_name} báo cáo sự cố: {c.message}",
    NotificationType.project_created: lambda c: f'Dự án "{c.project_name}" cần phê duyệt',
    NotificationType.project_needs_approval: lambda c: f'Dự án "{c.project_name}" cần phê duyệt',
    NotificationType.project_director_approved: (
        lambda c: f'Dự án "{c.project_name}" đã được Giám đốc phê duyệt'
    ),
    NotificationType.project_director_rejected: (
        lambda c: f'Dự án "{c.project_name}" bị từ chối: {c.reason or "Không đạt yêu cầu"}'
    ),
    NotificationType.project_closed: lambda c: f'Dự án "{c.project_name}" đã đóng',
    NotificationType.comment_new: lambda c: f'{c.actor_name} đã bình luận trong "{c.task_title}"',
    NotificationType.file_attached: lambda c: f'Tệp mới được đính kèm vào "{c.task_title}"',
    NotificationType.label_added: lambda c: f'Công việc "{c.task_title}" đã được gắn thẻ "{c.label_name}"',
    NotificationType.user_added: lambda c: f"Tài khoản mới được tạo: {c.username}",
    NotificationType.login_failed_alert: (
        lambda c: f"Tài khoản {c.username} bị khóa do đăng nhập sai nhiều lần"
    ),
}


@dataclass(frozen=True)
class RoleTarget:
    role: RoleTag
    department_scoped: bool = False


@dataclass(frozen=True)
class Route:
    roles: tuple[RoleTarget, ...] = ()
    task_members: bool = False
    explicit_members: bool = False


ROUTES: dict[NotificationType, Route] = {
    NotificationType.task_assigned: Route(explicit_members=True),
    NotificationType.review_requested: Route(roles=(RoleTarget(RoleTag.leader, department_scoped=True),)),
    NotificationType.task_submitted: Route(roles=(RoleTarget(RoleTag.leader, department_scoped=True),)),
    NotificationType.review_completed: Route(task_members=True),
    NotificationType.task_approved: Route(task_members=True),
    NotificationType.task_rejected: Route(task_members=True),
    NotificationType.task_returned: Route(task_members=True),
    NotificationType.feedback_given: Route(task_members=True),
    NotificationType.task_completed: Route(roles=(RoleTarget(RoleTag.leader, department_scoped=True),)),
    NotificationType.status_changed: Route(task_members=True),
    NotificationType.deadline_changed: Route(task_members=True),
    NotificationType.escalate_to_leader: Route(roles=(RoleTarget(RoleTag.leader, department_scoped=True),)),
    NotificationType.escalate_to_pmo: Route(roles=(RoleTarget(RoleTag.pmo),)),
    NotificationType.project_created: Route(roles=(RoleTarget(RoleTag.director), RoleTarget(RoleTag.admin))),
    NotificationType.project_needs_approval: Route(roles=(RoleTarget(RoleTag.director),)),
    NotificationType.project_director_approved: Route(
        roles=(RoleTarget(RoleTag.pmo), RoleTarget(RoleTag.leader, department_scoped=True))
    ),
    NotificationType.project_director_rejected: Route(roles=(RoleTarget(RoleTag.pmo),)),
    NotificationType.project_closed: Route(
        roles=(RoleTarget(RoleTag.director), RoleTarget(RoleTag.leader, department_scoped=True))
    ),
    NotificationType.comment_new: Route(task_members=True),
    NotificationType.file_attached: Route(task_members=True),
    NotificationType.label_added: Route(task_members=True),
    NotificationType.user_added: Route(roles=(RoleTarget(RoleTag.admin),)),
    NotificationType.login_failed_alert: Route(roles=(RoleTarget(RoleTag.admin),)),
}


def notification_type_for_status(status: str | None) -> NotificationType:
    status = normalize_status(status)
    if status in REVIEW_STATUSES:
        return NotificationType.review_requested
    if status == "approved":
        return NotificationType.review_completed
    if status == "rejected":
        return NotificationType.task_rejected
    if status == "returned":
        return NotificationType.task_returned
    if status in COMPLETION_STATUSES:
        return NotificationType.task_completed
    return NotificationType.status_changed


def role_ids_for(db: Session, tag: RoleTag) -> list[uuid.UUID]:
    return [role.id for role in db.query(Role).all() if normalize_role(role.name) == tag]


def _active_accounts(db: Session):
    return (
        db.query(Account)
        .filter(Account.is_deleted.is_(False))
        .filter(Account.status == AccountStatus.active.value)
    )


def accounts_by_role(db: Session, tag: RoleTag, department_id: uuid.UUID | None = None) -> list[uuid.UUID]:
    role_ids = role_ids_for(db, tag)
    if not role_ids:
        logger.info("notification_no_role_found role=%s", tag.value)
        return []
    query = _active_accounts(db).filter(Account.role_id.in_(role_ids))
    if department_id is not None:
        query = (
            query.join(Member, Member.id == Account.member_id)
            .filter(Member.department_id == department_id)
            .filter(Member.is_deleted.is_(False))
        )
    return [account.id for account in query.order_by(Account.created_at).all()]


def accounts_for_members(db: Session, member_ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
    """Map members to their login accounts; members without one are skipped."""
    member_ids = list(member_ids)
    if not member_ids:
        return []
    rows = (
        _active_accounts(db)
        .join(Member, Member.id == Account.member_id)
        .filter(Member.id.in_(member_ids))
        .filter(Member.is_deleted.is_(False))
        .all()
    )
    by_member = {account.member_id: account.id for account in rows}
    return [by_member[member_id] for member_id in member_ids if member_id in by_member]


def task_member_accounts(db: Session, task_id: uuid.UUID) -> list[uuid.UUID]:
    member_ids = [
        row.member_id
        for row in db.query(TaskMember)
        .filter(TaskMember.task_id == task_id)
        .order_by(TaskMember.position)
        .all()
    ]
    return accounts_for_members(db, member_ids)


class NotificationRouter:
    """Resolve recipients for a notification type and write the rows."""

    def resolve_recipients(
        self,
        db: Session,
        notification_type: NotificationType,
        actor_account_id: uuid.UUID | None,
        context: RoutingContext,
    ) -> list[uuid.UUID]:
        route = ROUTES.get(notification_type)
        if route is None:
            return []
        candidates: list[uuid.UUID] = []
        if route.explicit_members:
            candidates.extend(accounts_for_members(db, context.member_ids))
        if route.task_members and context.task_id:
            candidates.extend(task_member_accounts(db, context.task_id))
        for target in route.roles:
            if target.department_scoped:
                if context.department_id is None:
                    continue
                candidates.extend(accounts_by_role(db, target.role, context.department_id))
            else:
                candidates.extend(accounts_by_role(db, target.role))
        seen: set[uuid.UUID] = set()
        recipients: list[uuid.UUID] = []
        for account_id in candidates:
            if account_id == actor_account_id or account_id in seen:
                continue
            seen.add(account_id)
            recipients.append(account_id)
        return recipients

    def build_message(self, notification_type: NotificationType, context: RoutingContext) -> str:
        template = MESSAGE_TEMPLATES.get(notification_type)
        if template is None:
            return context.message or notification_type.value
        return template(context)

    def notify(
        self,
        db: Session,
        notification_type: NotificationType,
        actor_account_id: uuid.UUID | None,
        context: RoutingContext,
    ) -> list[Notification]:
        try:
            if notification_type not in ROUTES:
                logger.warning("notification_unrouted type=%s", notification_type.value)
                return []
            recipients = self.resolve_recipients(db, notification_type, actor_account_id, context)
            if not recipients:
                logger.info("notification_no_recipients type=%s", notification_type.value)
                return []
            message = self.build_message(notification_type, context)
            created: list[Notification] = []
            for recipient_id in recipients:
                notification = Notification(
                    type=notification_type.value,
                    recipient_account_id=recipient_id,
                    sender_account_id=actor_account_id,
                    message=message,
                    task_id=context.task_id,
                    project_id=context.project_id,
                )
                db.add(notification)
                created.append(notification)
            db.flush()
            NOTIFICATIONS_CREATED.labels(type=notification_type.value).inc(len(created))
            logger.info(
                "notifications_created type=%s count=%s task_id=%s project_id=%s",
                notification_type.value,
                len(created),
                context.task_id,
                context.project_id,
            )
            return created
        except Exception:
            db.rollback()
            NOTIFICATION_FAILURES.labels(type=notification_type.value).inc()
            logger.exception("notification_routing_failed type=%s", notification_type.value)
            return []


class Notifications:
    """Inbox operations for the signed-in account."""

    @staticmethod
    @service_boundary
    def list(db: Session, account_id, page: int = 1, limit: int = 20, unread_only: bool = False) -> ServiceResult:
        page, limit = clamp_page(page, limit)
        query = db.query(Notification).filter(Notification.recipient_account_id == account_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        total = query.count()
        items = (
            query.options(selectinload(Notification.sender).selectinload(Account.member))
            .order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return ServiceResult.ok(items, pagination=page_meta(page, limit, total))

    @staticmethod
    @service_boundary
    def unread_count(db: Session, account_id) -> ServiceResult:
        count = (
            db.query(Notification)
            .filter(Notification.recipient_account_id == account_id)
            .filter(Notification.is_read.is_(False))
            .count()
        )
        return ServiceResult.ok({"count": count})

    @staticmethod
    def _get_own(db: Session, notification_id, account_id) -> Notification:
        notification = db.get(Notification, try_uuid(notification_id)) if try_uuid(notification_id) else None
        if not notification or notification.recipient_account_id != account_id:
            raise NotFoundError("Notification not found")
        return notification

    @staticmethod
    @service_boundary
    def mark_read(db: Session, notification_id, account_id) -> ServiceResult:
        notification = Notifications._get_own(db, notification_id, account_id)
        notification.is_read = True
        db.commit()
        return ServiceResult.ok(message="Marked as read")

    @staticmethod
    @service_boundary
    def mark_all_read(db: Session, account_id) -> ServiceResult:
        updated = (
            db.query(Notification)
            .filter(Notification.recipient_account_id == account_id)
            .filter(Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        db.commit()
        return ServiceResult.ok({"updated": updated}, message="All notifications marked as read")

    @staticmethod
    @service_boundary
    def delete(db: Session, notification_id, account_id) -> ServiceResult:
        notification = Notifications._get_own(db, notification_id, account_id)
        db.delete(notification)
        db.commit()
        return ServiceResult.ok(message="Deleted")


notifications = Notifications()
