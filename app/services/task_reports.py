import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session, selectinload

from app.errors import NotFoundError, ValidationError
from app.models.auth import Account
from app.models.projects import TaskReport
from app.schemas.task_reports import TaskReportCreate, TaskReportUpdate
from app.services.assignees import is_assignee
from app.services.common import clamp_page, coerce_uuid, page_meta, try_uuid
from app.services.events import emit_event
from app.services.events.types import EventType
from app.services.identity import IdentityContext, ensure_allowed
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import ELEVATED_REPORT_ROLES, Action, PolicyContext
from app.services.tasks import load_task

logger = logging.getLogger(__name__)


def _get_report(db: Session, report_id) -> TaskReport:
    report_uuid = try_uuid(report_id)
    report = db.get(TaskReport, report_uuid) if report_uuid else None
    if report is None or report.is_deleted:
        raise NotFoundError("Report not found")
    return report


def _ensure_can_manage(identity: IdentityContext, report: TaskReport) -> None:
    ensure_allowed(
        identity,
        Action.task_report_manage,
        PolicyContext(is_owner=report.reporter_account_id == identity.account_id),
    )


def _emit(db: Session, event_type: EventType, identity: IdentityContext, report: TaskReport, message: str) -> None:
    emit_event(
        db,
        event_type,
        {"target_type": "task_report", "target_id": str(report.id), "log_message": message},
        actor_account_id=identity.account_id,
        task_id=report.task_id,
    )


class TaskReports:
    @staticmethod
    @service_boundary
    def create(db: Session, identity: IdentityContext, payload: TaskReportCreate) -> ServiceResult:
        content = (payload.content or "").strip()
        if not payload.task_id or not content:
            raise ValidationError("Missing required fields: taskId, content")
        task = load_task(db, payload.task_id)
        ensure_allowed(
            identity,
            Action.task_report_create,
            PolicyContext(is_assignee=is_assignee(task, identity.member_id)),
        )
        reported_at = datetime.now(UTC)
        report = TaskReport(
            task_id=task.id,
            reporter_account_id=identity.account_id,
            content=content,
            progress=payload.progress or "0%",
            period_type=payload.period_type or "daily",
            period_start=payload.period_start or reported_at,
            period_end=payload.period_end or reported_at,
            status="submitted",
            issues=payload.issues,
            next_plan=payload.next_plan,
        )
        db.add(report)
        db.commit()
        db.refresh(report)
        logger.info("task_report_created report_id=%s task_id=%s", report.id, task.id)
        _emit(db, EventType.task_report_created, identity, report, f'Báo cáo tiến độ công việc "{task.title}"')
        return ServiceResult.created(report)

    @staticmethod
    @service_boundary
    def list(
        db: Session,
        identity: IdentityContext,
        task_id: str | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> ServiceResult:
        page, limit = clamp_page(page, limit)
        query = (
            db.query(TaskReport)
            .options(selectinload(TaskReport.reporter).selectinload(Account.member))
            .filter(TaskReport.is_deleted.is_(False))
        )
        if task_id:
            query = query.filter(TaskReport.task_id == coerce_uuid(task_id))
        if identity.role not in ELEVATED_REPORT_ROLES:
            query = query.filter(TaskReport.reporter_account_id == identity.account_id)
        total = query.count()
        items = (
            query.order_by(TaskReport.period_start.desc(), TaskReport.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return ServiceResult.ok(items, pagination=page_meta(page, limit, total))

    @staticmethod
    @service_boundary
    def update(db: Session, identity: IdentityContext, report_id: str, payload: TaskReportUpdate) -> ServiceResult:
        report = _get_report(db, report_id)
        _ensure_can_manage(identity, report)
        data = payload.model_dump(exclude_unset=True)
        if "content" in data:
            content = (data["content"] or "").strip()
            if not content:
                raise ValidationError("Nội dung không được để trống")
            data["content"] = content
        for key, value in data.items():
            if value is not None:
                setattr(report, key, value)
        db.commit()
        db.refresh(report)
        _emit(db, EventType.task_report_updated, identity, report, "Cập nhật báo cáo công việc")
        return ServiceResult.ok(report)

    @staticmethod
    @service_boundary
    def delete(db: Session, identity: IdentityContext, report_id: str) -> ServiceResult:
        report = _get_report(db, report_id)
        _ensure_can_manage(identity, report)
        report.is_deleted = True
        report.deleted_at = datetime.now(UTC)
        report.deleted_by_account_id = identity.account_id
        db.commit()
        _emit(db, EventType.task_report_deleted, identity, report, "Xóa báo cáo công việc")
        return ServiceResult.ok(message="Deleted")


task_reports = TaskReports()
