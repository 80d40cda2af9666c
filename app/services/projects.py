import logging
from datetime import UTC, datetime

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from app.container import container
from app.errors import ConflictError, ValidationError
from app.models.organization import Department
from app.models.projects import Project, ProjectStatus
from app.schemas.projects import ProjectCreate, ProjectUpdate
from app.services.common import (
    apply_ordering,
    apply_pagination,
    clamp_page,
    coerce_uuid,
    ensure_exists,
    page_meta,
)
from app.services.events import emit_event
from app.services.events.types import EventType
from app.services.identity import IdentityContext, ensure_allowed
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import Action, PolicyContext, project_scope
from app.services.workflow import apply_project_status, normalize_status

logger = logging.getLogger(__name__)


def _duplicate_name_message(name: str) -> str:
    return f"Tên dự án '{name}' đã tồn tại. Vui lòng chọn tên khác."


def _ensure_unique_name(db: Session, name: str, exclude_id=None) -> None:
    query = (
        db.query(Project.id)
        .filter(func.lower(Project.name) == name.strip().lower())
        .filter(Project.is_deleted.is_(False))
    )
    if exclude_id is not None:
        query = query.filter(Project.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(_duplicate_name_message(name.strip()), code="duplicate_name")


def _get_project(db: Session, project_id: str) -> Project:
    return ensure_exists(db, Project, project_id, "Project not found")


class Projects:
    @staticmethod
    @service_boundary
    def create(db: Session, identity: IdentityContext, payload: ProjectCreate) -> ServiceResult:
        ensure_allowed(identity, Action.project_create)
        name = (payload.name or "").strip()
        if not name or not payload.department_id:
            raise ValidationError("Missing required fields: name, departmentId")
        department = ensure_exists(db, Department, payload.department_id, "Department not found")
        _ensure_unique_name(db, name)
        status = normalize_status(payload.status) or ProjectStatus.active.value
        if status == ProjectStatus.deleted.value:
            raise ValidationError("Trạng thái dự án không hợp lệ")
        project = Project(
            name=name,
            description=payload.description,
            department_id=department.id,
            status=status,
            begin_date=payload.begin_date,
            end_date=payload.end_date,
            created_by_account_id=identity.account_id,
        )
        db.add(project)
        db.commit()
        db.refresh(project)
        logger.info("project_created project_id=%s department_id=%s", project.id, department.id)

        emit_event(
            db,
            EventType.project_created,
            {
                "project_name": project.name,
                "department_id": str(department.id),
                "actor_name": identity.display_name,
                "log_message": f'Tạo dự án "{project.name}"',
            },
            actor_account_id=identity.account_id,
            project_id=project.id,
        )
        return ServiceResult.created(project)

    @staticmethod
    @service_boundary
    def get(db: Session, identity: IdentityContext, project_id: str) -> ServiceResult:
        project = _get_project(db, project_id)
        ensure_allowed(
            identity,
            Action.project_view,
            PolicyContext(
                actor_department_id=identity.department_id,
                target_department_id=project.department_id,
            ),
        )
        return ServiceResult.ok(project)

    @staticmethod
    @service_boundary
    def list(
        db: Session,
        identity: IdentityContext,
        status: str | None = None,
        department_id: str | None = None,
        search: str | None = None,
        order_by: str = "created_at",
        order_dir: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> ServiceResult:
        page, limit = clamp_page(page, limit)
        toggles = container.policy_toggles()
        scope = project_scope(identity.role, identity.department_id, toggles)
        if scope.is_empty:
            ensure_allowed(identity, Action.project_view)
            return ServiceResult.ok([], pagination=page_meta(page, limit, 0))

        query = (
            db.query(Project)
            .options(selectinload(Project.department))
            .filter(Project.is_deleted.is_(False))
        )
        if not scope.everything:
            query = query.filter(Project.department_id == scope.department_id)
        if status:
            query = query.filter(Project.status == normalize_status(status))
        if department_id:
            query = query.filter(Project.department_id == coerce_uuid(department_id))
        if search and search.strip():
            like_term = f"%{search.strip()}%"
            query = query.filter(or_(Project.name.ilike(like_term), Project.description.ilike(like_term)))
        total = query.count()
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": Project.created_at,
                "name": Project.name,
                "status": Project.status,
                "end_date": Project.end_date,
            },
        )
        items = apply_pagination(query, limit, (page - 1) * limit).all()
        return ServiceResult.ok(items, pagination=page_meta(page, limit, total))

    @staticmethod
    @service_boundary
    def update(db: Session, identity: IdentityContext, project_id: str, payload: ProjectUpdate) -> ServiceResult:
        project = _get_project(db, project_id)
        data = payload.model_dump(exclude_unset=True)
        reason = data.pop("reason", None)
        ensure_allowed(
            identity,
            Action.project_update,
            PolicyContext(
                actor_department_id=identity.department_id,
                target_department_id=project.department_id,
                fields=frozenset(payload.model_fields_set),
                status=data.get("status"),
            ),
        )

        if "name" in data:
            name = (data["name"] or "").strip()
            if not name:
                raise ValidationError("Tên dự án không được để trống")
            _ensure_unique_name(db, name, exclude_id=project.id)
            data["name"] = name
        if data.get("department_id") is not None:
            ensure_exists(db, Department, data["department_id"], "Department not found")

        change = None
        if "status" in data:
            new_status = data.pop("status")
            if normalize_status(new_status) == ProjectStatus.deleted.value:
                raise ValidationError("Dùng chức năng xóa để xóa dự án")
            if new_status:
                change = apply_project_status(project, new_status)
        for key, value in data.items():
            setattr(project, key, value)
        db.commit()
        db.refresh(project)

        if change is not None:
            logger.info(
                "project_status_changed project_id=%s from=%s to=%s",
                project.id,
                change.previous,
                change.current,
            )
            emit_event(
                db,
                EventType.project_status_changed,
                {
                    "project_name": project.name,
                    "department_id": str(project.department_id) if project.department_id else None,
                    "actor_name": identity.display_name,
                    "status": change.current,
                    "reason": reason,
                    "log_message": f'Đổi trạng thái dự án "{project.name}": {change.label}',
                },
                actor_account_id=identity.account_id,
                project_id=project.id,
            )
        if data:
            emit_event(
                db,
                EventType.project_updated,
                {
                    "project_name": project.name,
                    "changed_fields": sorted(data.keys()),
                    "log_message": f'Cập nhật dự án "{project.name}"',
                },
                actor_account_id=identity.account_id,
                project_id=project.id,
            )
        return ServiceResult.ok(project)

    @staticmethod
    @service_boundary
    def delete(db: Session, identity: IdentityContext, project_id: str) -> ServiceResult:
        """Soft delete a project."""
        ensure_allowed(identity, Action.project_delete)
        project = _get_project(db, project_id)
        project.status = ProjectStatus.deleted.value
        project.is_deleted = True
        project.deleted_at = datetime.now(UTC)
        project.deleted_by_account_id = identity.account_id
        db.commit()
        logger.info("project_deleted project_id=%s", project.id)

        emit_event(
            db,
            EventType.project_deleted,
            {"project_name": project.name, "log_message": f'Xóa dự án "{project.name}"'},
            actor_account_id=identity.account_id,
            project_id=project.id,
        )
        return ServiceResult.ok(message="Project deleted")


projects = Projects()
