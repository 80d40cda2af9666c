"""Task lifecycle: create, read, update with the status workflow, delete."""

import logging
from datetime import UTC, datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from app.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models.auth import Account
from app.models.projects import (
    Project,
    Task,
    TaskAttachment,
    TaskComment,
    TaskLabel,
    TaskMember,
    TaskPriority,
    TaskStatus,
)
from app.schemas.tasks import TaskCreate, TaskUpdate
from app.services.assignees import is_assignee, load_members, normalize_member_ids, set_assignees
from app.services.common import (
    apply_ordering,
    apply_pagination,
    as_utc,
    clamp_page,
    coerce_uuid,
    ensure_exists,
    page_meta,
    validate_enum,
)
from app.services.events import emit_event
from app.services.events.types import EventType
from app.services.identity import IdentityContext, ensure_allowed
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import Action, PolicyContext, RoleTag, task_scope
from app.services.workflow import apply_status, normalize_status, parse_progress, validate_transition

logger = logging.getLogger(__name__)

SAME_DEPARTMENT_ASSIGNEES = "Chỉ được giao việc cho nhân viên thuộc phòng ban của mình."

_DETAIL_OPTIONS = (
    selectinload(Task.project),
    selectinload(Task.members).selectinload(TaskMember.member),
    selectinload(Task.labels).selectinload(TaskLabel.label),
    selectinload(Task.checklist_items),
    selectinload(Task.attachments.and_(TaskAttachment.is_deleted.is_(False))),
    selectinload(Task.comments.and_(TaskComment.is_deleted.is_(False)))
    .selectinload(TaskComment.account).selectinload(Account.member),
    selectinload(Task.subtasks.and_(Task.is_deleted.is_(False))),
)


def load_task(db: Session, task_id, with_detail: bool = False) -> Task:
    """Fetch a non-deleted task or raise ``NotFoundError``."""
    task_uuid = coerce_uuid(task_id)
    query = db.query(Task).filter(Task.id == task_uuid).filter(Task.is_deleted.is_(False))
    if with_detail:
        query = query.options(*_DETAIL_OPTIONS)
    task = query.first()
    if task is None:
        raise NotFoundError("Task not found")
    return task


def task_context(identity: IdentityContext, task: Task, **extra) -> PolicyContext:
    project = task.project
    return PolicyContext(
        actor_department_id=identity.department_id,
        target_department_id=project.department_id if project else None,
        is_assignee=is_assignee(task, identity.member_id),
        **extra,
    )


def _requested_member_ids(member_ids, assigned_to) -> list | None:
    """``member_ids`` wins over the single ``assigned_to``; ``None`` means unchanged."""
    if member_ids is not None:
        return member_ids
    if assigned_to is not None:
        return [assigned_to] if assigned_to else []
    return None


def _task_payload(task: Task, identity: IdentityContext, **extra) -> dict:
    project = task.project
    payload = {
        "task_title": task.title,
        "project_name": project.name if project else None,
        "department_id": str(project.department_id) if project and project.department_id else None,
        "actor_name": identity.display_name,
    }
    payload.update(extra)
    return payload


class Tasks:
    @staticmethod
    @service_boundary
    def create(db: Session, identity: IdentityContext, payload: TaskCreate) -> ServiceResult:
        title = (payload.title or "").strip()
        if not title or not payload.project_id:
            raise ValidationError("Missing required fields: title, projectId")
        project = ensure_exists(db, Project, payload.project_id, "Project not found")

        parent = None
        if payload.parent_task_id:
            parent = ensure_exists(db, Task, payload.parent_task_id, "Parent task not found")
            if parent.project_id != project.id:
                raise ValidationError("Công việc cha không thuộc dự án này")

        member_ids = normalize_member_ids(_requested_member_ids(payload.member_ids, payload.assigned_to) or [])
        members = load_members(db, member_ids)
        ensure_allowed(
            identity,
            Action.task_create,
            PolicyContext(
                actor_department_id=identity.department_id,
                target_department_id=project.department_id,
                parent_task_id=parent.id if parent else None,
                assignee_department_ids=tuple(member.department_id for member in members),
                is_self_assignment=bool(member_ids) and member_ids == [identity.member_id],
            ),
        )

        progress = parse_progress(payload.progress) if payload.progress is not None else 0
        priority = (
            validate_enum(payload.priority, TaskPriority, "priority").value
            if payload.priority
            else TaskPriority.medium.value
        )
        task = Task(
            project_id=project.id,
            parent_task_id=parent.id if parent else None,
            title=title,
            description=payload.description,
            status=TaskStatus.pending.value,
            priority=priority,
            progress=progress,
            begin_date=payload.begin_date,
            due_date=payload.due_date,
            created_by_account_id=identity.account_id,
        )
        db.add(task)
        db.flush()
        set_assignees(db, task, member_ids, added_by_account_id=identity.account_id)
        db.commit()
        db.refresh(task)
        logger.info(
            "task_created task_id=%s project_id=%s parent_task_id=%s assignees=%s",
            task.id,
            project.id,
            task.parent_task_id,
            len(member_ids),
        )

        emit_event(
            db,
            EventType.task_created,
            _task_payload(
                task,
                identity,
                member_ids=[str(member_id) for member_id in member_ids],
                log_message=f'Tạo công việc "{task.title}"',
            ),
            actor_account_id=identity.account_id,
            task_id=task.id,
            project_id=project.id,
        )
        return ServiceResult.created(task)

    @staticmethod
    @service_boundary
    def get(db: Session, identity: IdentityContext, task_id: str) -> ServiceResult:
        task = load_task(db, task_id, with_detail=True)
        ensure_allowed(identity, Action.task_view, task_context(identity, task))
        return ServiceResult.ok(task)

    @staticmethod
    @service_boundary
    def list(
        db: Session,
        identity: IdentityContext,
        project_id: str | None = None,
        parent_task_id: str | None = None,
        status: str | None = None,
        assigned_to: str | None = None,
        search: str | None = None,
        order_by: str = "created_at",
        order_dir: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> ServiceResult:
        page, limit = clamp_page(page, limit)
        scope = task_scope(identity.role, identity.department_id, identity.member_id)
        if scope.is_empty:
            return ServiceResult.ok([], pagination=page_meta(page, limit, 0))

        query = (
            db.query(Task)
            .options(
                selectinload(Task.members).selectinload(TaskMember.member),
                selectinload(Task.labels).selectinload(TaskLabel.label),
            )
            .filter(Task.is_deleted.is_(False))
        )
        if scope.department_id is not None:
            query = query.join(Project, Project.id == Task.project_id).filter(
                Project.department_id == scope.department_id
            )
        if scope.member_id is not None:
            query = query.filter(Task.members.any(TaskMember.member_id == scope.member_id))
        if parent_task_id:
            query = query.filter(Task.parent_task_id == coerce_uuid(parent_task_id))
        elif identity.role != RoleTag.staff:
            # Staff see their assigned subtasks alongside top-level work.
            query = query.filter(Task.parent_task_id.is_(None))
        if project_id:
            query = query.filter(Task.project_id == coerce_uuid(project_id))
        if status:
            query = query.filter(Task.status == normalize_status(status))
        if assigned_to:
            query = query.filter(Task.members.any(TaskMember.member_id == coerce_uuid(assigned_to)))
        if search and search.strip():
            like_term = f"%{search.strip()}%"
            query = query.filter(or_(Task.title.ilike(like_term), Task.description.ilike(like_term)))
        total = query.count()
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": Task.created_at,
                "due_date": Task.due_date,
                "title": Task.title,
                "status": Task.status,
                "progress": Task.progress,
            },
        )
        items = apply_pagination(query, limit, (page - 1) * limit).all()
        return ServiceResult.ok(items, pagination=page_meta(page, limit, total))

    @staticmethod
    @service_boundary
    def update(db: Session, identity: IdentityContext, task_id: str, payload: TaskUpdate) -> ServiceResult:
        task = load_task(db, task_id)
        data = payload.model_dump(exclude_unset=True)
        fields = frozenset(payload.model_fields_set)
        reason = data.pop("reason", None)
        ensure_allowed(
            identity,
            Action.task_update,
            task_context(identity, task, fields=fields, status=data.get("status")),
        )

        requested_members = _requested_member_ids(data.pop("member_ids", None), data.pop("assigned_to", None))
        if requested_members is not None:
            member_ids = normalize_member_ids(requested_members)
            members = load_members(db, member_ids)
            if identity.role == RoleTag.leader and any(
                member.department_id != identity.department_id for member in members
            ):
                raise PermissionDeniedError(SAME_DEPARTMENT_ASSIGNEES)

        if "title" in data:
            title = (data["title"] or "").strip()
            if not title:
                raise ValidationError("Tiêu đề công việc không được để trống")
            data["title"] = title
        if "progress" in data:
            data["progress"] = parse_progress(data["progress"])
        if data.get("priority") is not None:
            data["priority"] = validate_enum(data["priority"], TaskPriority, "priority").value
        if data.get("parent_task_id") is not None:
            parent = ensure_exists(db, Task, data["parent_task_id"], "Parent task not found")
            if parent.id == task.id or parent.project_id != task.project_id:
                raise ValidationError("Công việc cha không hợp lệ")

        change = None
        if "status" in data:
            new_status = data.pop("status")
            check = validate_transition(task.status, new_status)
            if not check.allowed:
                raise ValidationError(check.reason or "Trạng thái không hợp lệ")
            change = apply_status(task, new_status)

        previous_due = as_utc(task.due_date)
        for key, value in data.items():
            setattr(task, key, value)
        added_members = []
        if requested_members is not None:
            added_members = set_assignees(db, task, requested_members, added_by_account_id=identity.account_id)
        db.commit()
        db.refresh(task)

        if change is not None:
            logger.info("task_status_changed task_id=%s from=%s to=%s", task.id, change.previous, change.current)
            emit_event(
                db,
                EventType.task_status_changed,
                _task_payload(
                    task,
                    identity,
                    status=change.current,
                    previous_status=change.previous,
                    reason=reason,
                    log_message=f'Đổi trạng thái công việc "{task.title}": {change.label}',
                ),
                actor_account_id=identity.account_id,
                task_id=task.id,
                project_id=task.project_id,
            )
        if "due_date" in data and as_utc(task.due_date) != previous_due:
            emit_event(
                db,
                EventType.task_deadline_changed,
                _task_payload(task, identity),
                actor_account_id=identity.account_id,
                task_id=task.id,
                project_id=task.project_id,
            )
        if added_members:
            emit_event(
                db,
                EventType.task_members_changed,
                _task_payload(
                    task,
                    identity,
                    member_ids=[str(member_id) for member_id in added_members],
                    log_message=f'Giao công việc "{task.title}" cho {len(added_members)} thành viên',
                ),
                actor_account_id=identity.account_id,
                task_id=task.id,
                project_id=task.project_id,
            )
        if data:
            emit_event(
                db,
                EventType.task_updated,
                _task_payload(
                    task,
                    identity,
                    changed_fields=sorted(data.keys()),
                    log_message=f'Cập nhật công việc "{task.title}"',
                ),
                actor_account_id=identity.account_id,
                task_id=task.id,
                project_id=task.project_id,
            )
        return ServiceResult.ok(task)

    @staticmethod
    @service_boundary
    def delete(db: Session, identity: IdentityContext, task_id: str) -> ServiceResult:
        """Soft delete a task."""
        task = load_task(db, task_id)
        ensure_allowed(identity, Action.task_delete, task_context(identity, task))
        task.status = TaskStatus.deleted.value
        task.is_deleted = True
        task.deleted_at = datetime.now(UTC)
        task.deleted_by_account_id = identity.account_id
        db.commit()
        logger.info("task_deleted task_id=%s", task.id)

        emit_event(
            db,
            EventType.task_deleted,
            _task_payload(task, identity, log_message=f'Xóa công việc "{task.title}"'),
            actor_account_id=identity.account_id,
            task_id=task.id,
            project_id=task.project_id,
        )
        return ServiceResult.ok(message="Task deleted")


tasks = Tasks()
