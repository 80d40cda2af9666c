"""Out-of-band help requests: Staff to Leader, Leader to PMO."""

import logging

from sqlalchemy.orm import Session

from app.errors import NotFoundError, ValidationError
from app.models.projects import Project
from app.schemas.escalations import EscalateToLeader, EscalateToPmo
from app.services.common import ensure_exists
from app.services.events import emit_event
from app.services.events.types import EventType
from app.services.identity import IdentityContext, ensure_allowed
from app.services.notifications import accounts_by_role
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import Action, RoleTag
from app.services.tasks import load_task

logger = logging.getLogger(__name__)


class Escalations:
    @staticmethod
    @service_boundary
    def to_leader(db: Session, identity: IdentityContext, payload: EscalateToLeader) -> ServiceResult:
        ensure_allowed(identity, Action.escalate_to_leader)
        message = (payload.message or "").strip()
        if not payload.task_id or not message:
            raise ValidationError("taskId và message là bắt buộc")
        try:
            task = load_task(db, payload.task_id)
        except NotFoundError as exc:
            raise NotFoundError("Không tìm thấy công việc") from exc

        department_id = identity.department_id or (task.project.department_id if task.project else None)
        leaders = [
            account_id
            for account_id in (accounts_by_role(db, RoleTag.leader, department_id) if department_id else [])
            if account_id != identity.account_id
        ]
        if not leaders:
            raise NotFoundError("Không tìm thấy Leader trong phòng ban")

        emit_event(
            db,
            EventType.escalated_to_leader,
            {
                "task_title": task.title,
                "department_id": str(department_id),
                "actor_name": identity.display_name,
                "message": message,
                "log_message": f'Yêu cầu hỗ trợ công việc "{task.title}" lên Leader: {message}',
            },
            actor_account_id=identity.account_id,
            task_id=task.id,
            project_id=task.project_id,
        )
        logger.info("escalated_to_leader task_id=%s leaders=%s", task.id, len(leaders))
        return ServiceResult.ok({"leadersNotified": len(leaders)}, message="Đã gửi yêu cầu hỗ trợ đến Leader")

    @staticmethod
    @service_boundary
    def to_pmo(db: Session, identity: IdentityContext, payload: EscalateToPmo) -> ServiceResult:
        ensure_allowed(identity, Action.escalate_to_pmo)
        message = (payload.message or "").strip()
        if not message:
            raise ValidationError("message là bắt buộc")
        task = load_task(db, payload.task_id) if payload.task_id else None
        project_id = task.project_id if task else None
        if payload.project_id:
            project_id = ensure_exists(db, Project, payload.project_id, "Project not found").id

        pmos = [account_id for account_id in accounts_by_role(db, RoleTag.pmo) if account_id != identity.account_id]
        if not pmos:
            raise NotFoundError("Không tìm thấy PMO")

        emit_event(
            db,
            EventType.escalated_to_pmo,
            {
                "task_title": task.title if task else None,
                "actor_name": identity.display_name,
                "message": message,
                "log_message": f"Báo cáo sự cố lên PMO: {message}",
            },
            actor_account_id=identity.account_id,
            task_id=task.id if task else None,
            project_id=project_id,
        )
        logger.info("escalated_to_pmo task_id=%s pmos=%s", task.id if task else None, len(pmos))
        return ServiceResult.ok({"pmosNotified": len(pmos)}, message="Đã báo cáo sự cố lên PMO")


escalations = Escalations()
