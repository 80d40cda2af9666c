import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.errors import ConflictError, ValidationError
from app.models.organization import Department, Member
from app.schemas.accounts import DepartmentCreate, DepartmentRead, DepartmentUpdate
from app.services.cache import DEPARTMENTS_KEY, get_cache
from app.services.common import ensure_exists
from app.services.events import emit_event
from app.services.events.types import EventType
from app.services.identity import IdentityContext, ensure_allowed
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import Action

logger = logging.getLogger(__name__)


def _ensure_unique_name(db: Session, name: str, exclude_id=None) -> None:
    query = (
        db.query(Department.id)
        .filter(func.lower(Department.name) == name.lower())
        .filter(Department.is_deleted.is_(False))
    )
    if exclude_id is not None:
        query = query.filter(Department.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Phòng ban '{name}' đã tồn tại")


def _emit(db: Session, event_type: EventType, identity: IdentityContext, department: Department, message: str):
    emit_event(
        db,
        event_type,
        {"target_type": "department", "target_id": str(department.id), "log_message": message},
        actor_account_id=identity.account_id,
    )


class Departments:
    @staticmethod
    @service_boundary
    def list(db: Session) -> ServiceResult:
        def _load() -> list[dict]:
            rows = (
                db.query(Department)
                .filter(Department.is_deleted.is_(False))
                .order_by(Department.name)
                .all()
            )
            return [DepartmentRead.model_validate(row).model_dump(mode="json", by_alias=True) for row in rows]

        return ServiceResult.ok(get_cache().get_or_set(DEPARTMENTS_KEY, _load))

    @staticmethod
    @service_boundary
    def members(db: Session, department_id: str) -> ServiceResult:
        department = ensure_exists(db, Department, department_id, "Department not found")
        items = (
            db.query(Member)
            .filter(Member.department_id == department.id)
            .filter(Member.is_deleted.is_(False))
            .order_by(Member.full_name)
            .all()
        )
        return ServiceResult.ok(items)

    @staticmethod
    @service_boundary
    def create(db: Session, identity: IdentityContext, payload: DepartmentCreate) -> ServiceResult:
        ensure_allowed(identity, Action.department_manage)
        name = (payload.name or "").strip()
        if not name:
            raise ValidationError("Missing required fields: name")
        _ensure_unique_name(db, name)
        if payload.parent_id:
            ensure_exists(db, Department, payload.parent_id, "Department not found")
        department = Department(name=name, description=payload.description, parent_id=payload.parent_id)
        db.add(department)
        db.commit()
        db.refresh(department)
        get_cache().invalidate("departments:*")
        logger.info("department_created department_id=%s", department.id)
        _emit(db, EventType.department_created, identity, department, f"Tạo phòng ban {department.name}")
        return ServiceResult.created(department)

    @staticmethod
    @service_boundary
    def update(
        db: Session,
        identity: IdentityContext,
        department_id: str,
        payload: DepartmentUpdate,
    ) -> ServiceResult:
        ensure_allowed(identity, Action.department_manage)
        department = ensure_exists(db, Department, department_id, "Department not found")
        data = payload.model_dump(exclude_unset=True)
        if data.get("name") is not None:
            data["name"] = data["name"].strip()
            _ensure_unique_name(db, data["name"], exclude_id=department.id)
        if data.get("parent_id") is not None:
            parent = ensure_exists(db, Department, data["parent_id"], "Department not found")
            if parent.id == department.id:
                raise ValidationError("Phòng ban cha không hợp lệ")
        for key, value in data.items():
            setattr(department, key, value)
        db.commit()
        db.refresh(department)
        get_cache().invalidate("departments:*")
        _emit(db, EventType.department_updated, identity, department, f"Cập nhật phòng ban {department.name}")
        return ServiceResult.ok(department)


departments = Departments()
