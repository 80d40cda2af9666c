"""Task sub-resources: checklist items, labels, attachments and comments."""

import logging
from datetime import UTC, datetime

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.errors import NotFoundError, PermissionDeniedError, ValidationError
from app.models.auth import Account
from app.models.projects import Label, Task, TaskAttachment, TaskChecklistItem, TaskComment, TaskLabel
from app.schemas.tasks import (
    AttachmentCreate,
    ChecklistItemCreate,
    ChecklistItemUpdate,
    CommentCreate,
    CommentUpdate,
    LabelRead,
    TaskLabelAdd,
)
from app.services.cache import LABELS_KEY, get_cache
from app.services.common import try_uuid
from app.services.events import emit_event
from app.services.events.types import EventType
from app.services.identity import IdentityContext, ensure_allowed
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import Action
from app.services.tasks import load_task, task_context

logger = logging.getLogger(__name__)

EMPTY_CONTENT = "Nội dung không được để trống"


def _editable_task(db: Session, identity: IdentityContext, task_id) -> Task:
    task = load_task(db, task_id)
    ensure_allowed(identity, Action.task_update, task_context(identity, task))
    return task


def _viewable_task(db: Session, identity: IdentityContext, task_id) -> Task:
    task = load_task(db, task_id)
    ensure_allowed(identity, Action.task_view, task_context(identity, task))
    return task


def _emit(db: Session, event_type: EventType, task: Task, identity: IdentityContext, **payload) -> None:
    project = task.project
    payload.setdefault("task_title", task.title)
    payload.setdefault("actor_name", identity.display_name)
    payload.setdefault("department_id", str(project.department_id) if project and project.department_id else None)
    emit_event(
        db,
        event_type,
        payload,
        actor_account_id=identity.account_id,
        task_id=task.id,
        project_id=task.project_id,
    )


def _clean_content(value: str | None) -> str:
    content = (value or "").strip()
    if not content:
        raise ValidationError(EMPTY_CONTENT)
    return content


class Checklist:
    @staticmethod
    @service_boundary
    def add(db: Session, identity: IdentityContext, task_id: str, payload: ChecklistItemCreate) -> ServiceResult:
        task = _editable_task(db, identity, task_id)
        content = _clean_content(payload.content)
        position = (
            db.query(func.max(TaskChecklistItem.position)).filter(TaskChecklistItem.task_id == task.id).scalar()
        )
        item = TaskChecklistItem(task_id=task.id, content=content, position=(position or 0) + 1)
        db.add(item)
        db.commit()
        db.refresh(item)
        _emit(
            db,
            EventType.checklist_item_added,
            task,
            identity,
            log_message=f'Thêm checklist "{content}" vào công việc "{task.title}"',
        )
        return ServiceResult.created(item)

    @staticmethod
    def _get_item(db: Session, task: Task, item_id) -> TaskChecklistItem:
        item_uuid = try_uuid(item_id)
        item = db.get(TaskChecklistItem, item_uuid) if item_uuid else None
        if item is None or item.task_id != task.id:
            raise NotFoundError("Checklist item not found")
        return item

    @staticmethod
    @service_boundary
    def update(
        db: Session,
        identity: IdentityContext,
        task_id: str,
        item_id: str,
        payload: ChecklistItemUpdate,
    ) -> ServiceResult:
        task = _editable_task(db, identity, task_id)
        item = Checklist._get_item(db, task, item_id)
        data = payload.model_dump(exclude_unset=True)
        if "content" in data:
            item.content = _clean_content(data["content"])
        if data.get("is_done") is not None:
            item.is_done = data["is_done"]
        db.commit()
        db.refresh(item)
        _emit(
            db,
            EventType.checklist_item_updated,
            task,
            identity,
            log_message=f'Cập nhật checklist "{item.content}" của công việc "{task.title}"',
        )
        return ServiceResult.ok(item)

    @staticmethod
    @service_boundary
    def delete(db: Session, identity: IdentityContext, task_id: str, item_id: str) -> ServiceResult:
        task = _editable_task(db, identity, task_id)
        item = Checklist._get_item(db, task, item_id)
        content = item.content
        db.delete(item)
        db.commit()
        _emit(
            db,
            EventType.checklist_item_deleted,
            task,
            identity,
            log_message=f'Xóa checklist "{content}" khỏi công việc "{task.title}"',
        )
        return ServiceResult.ok(message="Đã xóa checklist")


def _serialize_labels(labels: list[Label]) -> list[dict]:
    return [LabelRead.model_validate(label).model_dump(mode="json", by_alias=True) for label in labels]


class Labels:
    @staticmethod
    @service_boundary
    def list(db: Session) -> ServiceResult:
        def _load() -> list[dict]:
            return _serialize_labels(db.query(Label).order_by(Label.name).all())

        return ServiceResult.ok(get_cache().get_or_set(LABELS_KEY, _load))

    @staticmethod
    @service_boundary
    def add(db: Session, identity: IdentityContext, task_id: str, payload: TaskLabelAdd) -> ServiceResult:
        task = _editable_task(db, identity, task_id)
        name = (payload.name or "").strip()
        if not name:
            raise ValidationError("Tên nhãn không được để trống")
        label = db.query(Label).filter(func.lower(Label.name) == name.lower()).first()
        created_label = label is None
        if created_label:
            label = Label(name=name, color=payload.color)
            db.add(label)
            db.flush()
        linked = db.get(TaskLabel, (task.id, label.id))
        if linked is None:
            db.add(TaskLabel(task_id=task.id, label_id=label.id))
        db.commit()
        db.refresh(label)
        if created_label:
            get_cache().invalidate("labels:*")
        if linked is None:
            _emit(
                db,
                EventType.label_added,
                task,
                identity,
                label_name=label.name,
                log_message=f'Gắn nhãn "{label.name}" cho công việc "{task.title}"',
            )
        return ServiceResult.created(label)

    @staticmethod
    @service_boundary
    def remove(db: Session, identity: IdentityContext, task_id: str, label_id: str) -> ServiceResult:
        task = _editable_task(db, identity, task_id)
        label_uuid = try_uuid(label_id)
        linked = db.get(TaskLabel, (task.id, label_uuid)) if label_uuid else None
        if linked is None:
            raise NotFoundError("Label not found on task")
        label = db.get(Label, label_uuid)
        db.delete(linked)
        db.commit()
        _emit(
            db,
            EventType.label_removed,
            task,
            identity,
            label_name=label.name if label else None,
            log_message=f'Gỡ nhãn "{label.name if label else label_uuid}" khỏi công việc "{task.title}"',
        )
        return ServiceResult.ok(message="Đã gỡ nhãn")


class Attachments:
    @staticmethod
    @service_boundary
    def add(db: Session, identity: IdentityContext, task_id: str, payload: AttachmentCreate) -> ServiceResult:
        task = _editable_task(db, identity, task_id)
        file_name = (payload.file_name or "").strip()
        file_url = (payload.file_url or "").strip()
        if not file_name or not file_url:
            raise ValidationError("Missing required fields: fileName, fileUrl")
        attachment = TaskAttachment(
            task_id=task.id,
            file_name=file_name,
            file_url=file_url,
            mime_type=payload.mime_type,
            size_bytes=payload.size_bytes,
            uploaded_by_account_id=identity.account_id,
        )
        db.add(attachment)
        db.commit()
        db.refresh(attachment)
        _emit(
            db,
            EventType.attachment_added,
            task,
            identity,
            log_message=f'Thêm đính kèm "{file_name}" vào công việc "{task.title}"',
        )
        return ServiceResult.created(attachment)

    @staticmethod
    @service_boundary
    def delete(db: Session, identity: IdentityContext, task_id: str, attachment_id: str) -> ServiceResult:
        task = _editable_task(db, identity, task_id)
        attachment_uuid = try_uuid(attachment_id)
        attachment = db.get(TaskAttachment, attachment_uuid) if attachment_uuid else None
        if attachment is None or attachment.task_id != task.id or attachment.is_deleted:
            raise NotFoundError("Không tìm thấy đính kèm")
        attachment.is_deleted = True
        attachment.deleted_at = datetime.now(UTC)
        attachment.deleted_by_account_id = identity.account_id
        db.commit()
        _emit(
            db,
            EventType.attachment_deleted,
            task,
            identity,
            log_message=f'Xóa đính kèm "{attachment.file_name}" khỏi công việc "{task.title}"',
        )
        return ServiceResult.ok(message="Đã xóa đính kèm")


class Comments:
    @staticmethod
    @service_boundary
    def list(db: Session, identity: IdentityContext, task_id: str) -> ServiceResult:
        task = _viewable_task(db, identity, task_id)
        items = (
            db.query(TaskComment)
            .options(selectinload(TaskComment.account).selectinload(Account.member))
            .filter(TaskComment.task_id == task.id)
            .filter(TaskComment.is_deleted.is_(False))
            .order_by(TaskComment.created_at.asc())
            .all()
        )
        return ServiceResult.ok(items)

    @staticmethod
    @service_boundary
    def add(db: Session, identity: IdentityContext, task_id: str, payload: CommentCreate) -> ServiceResult:
        task = _viewable_task(db, identity, task_id)
        content = _clean_content(payload.content)
        comment = TaskComment(task_id=task.id, account_id=identity.account_id, content=content)
        db.add(comment)
        db.commit()
        db.refresh(comment)
        _emit(
            db,
            EventType.comment_added,
            task,
            identity,
            log_message=f'Bình luận trong công việc "{task.title}"',
        )
        return ServiceResult.created(comment)

    @staticmethod
    def _get_own(db: Session, identity: IdentityContext, task: Task, comment_id, denied: str) -> TaskComment:
        comment_uuid = try_uuid(comment_id)
        comment = db.get(TaskComment, comment_uuid) if comment_uuid else None
        if comment is None or comment.task_id != task.id or comment.is_deleted:
            raise NotFoundError("Không tìm thấy bình luận")
        if comment.account_id != identity.account_id:
            raise PermissionDeniedError(denied)
        return comment

    @staticmethod
    @service_boundary
    def update(
        db: Session,
        identity: IdentityContext,
        task_id: str,
        comment_id: str,
        payload: CommentUpdate,
    ) -> ServiceResult:
        task = load_task(db, task_id)
        comment = Comments._get_own(db, identity, task, comment_id, "Không có quyền sửa bình luận này")
        comment.content = _clean_content(payload.content)
        db.commit()
        db.refresh(comment)
        _emit(
            db,
            EventType.comment_updated,
            task,
            identity,
            target_type="comment",
            target_id=str(comment.id),
            log_message=f'Sửa bình luận trong công việc "{task.title}"',
        )
        return ServiceResult.ok(comment)

    @staticmethod
    @service_boundary
    def delete(db: Session, identity: IdentityContext, task_id: str, comment_id: str) -> ServiceResult:
        task = load_task(db, task_id)
        comment = Comments._get_own(db, identity, task, comment_id, "Không có quyền xóa bình luận này")
        comment.is_deleted = True
        comment.deleted_at = datetime.now(UTC)
        comment.deleted_by_account_id = identity.account_id
        db.commit()
        _emit(
            db,
            EventType.comment_deleted,
            task,
            identity,
            target_type="comment",
            target_id=str(comment.id),
            log_message=f'Xóa bình luận trong công việc "{task.title}"',
        )
        return ServiceResult.ok(message="Đã xóa bình luận")


checklist = Checklist()
labels = Labels()
attachments = Attachments()
comments = Comments()
