"""Account administration. Every operation here is Admin only."""

import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from app.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from app.models.auth import Account, AccountStatus
from app.models.organization import Department, Member, Role
from app.schemas.accounts import AccountCreate, AccountStatusUpdate, AccountUpdate
from app.services import auth_flow
from app.services.common import (
    apply_ordering,
    apply_pagination,
    clamp_page,
    coerce_uuid,
    ensure_exists,
    now,
    page_meta,
    try_uuid,
    validate_enum,
)
from app.services.events import emit_event
from app.services.events.types import EventType
from app.services.identity import IdentityContext, ensure_allowed
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import Action

logger = logging.getLogger(__name__)


def _get_account(db: Session, account_id, include_deleted: bool = False) -> Account:
    query = db.query(Account).options(selectinload(Account.role), selectinload(Account.member))
    query = query.filter(Account.id == try_uuid(account_id))
    if not include_deleted:
        query = query.filter(Account.is_deleted.is_(False))
    account = query.first()
    if account is None:
        raise NotFoundError("Không tìm thấy tài khoản")
    return account


def _emit(db: Session, event_type: EventType, identity: IdentityContext, account: Account, message: str, **extra):
    payload = {
        "username": account.username,
        "target_type": "account",
        "target_id": str(account.id),
        "log_message": message,
    }
    payload.update(extra)
    emit_event(db, event_type, payload, actor_account_id=identity.account_id)


def _email_taken(db: Session, email: str, exclude_id=None) -> bool:
    query = db.query(Account.id).filter(func.lower(Account.email) == email.lower())
    if exclude_id is not None:
        query = query.filter(Account.id != exclude_id)
    return query.first() is not None


class Accounts:
    @staticmethod
    @service_boundary
    def create(db: Session, identity: IdentityContext, payload: AccountCreate) -> ServiceResult:
        ensure_allowed(identity, Action.account_manage)
        username = (payload.username or "").strip()
        if not username or not payload.password or not payload.role_id:
            raise ValidationError("Missing required fields: username, password, roleId")
        if db.query(Account.id).filter(Account.username == username).first():
            raise ConflictError("Username đã tồn tại")
        email = (payload.email or "").strip() or None
        if email and _email_taken(db, email):
            raise ConflictError("Email đã tồn tại")
        auth_flow.check_password_strength(payload.password)
        role = ensure_exists(db, Role, payload.role_id, "Role not found")

        member = None
        if payload.member_id:
            member = ensure_exists(db, Member, payload.member_id, "Member not found")
            if member.account is not None:
                raise ValidationError("Nhân viên đã có tài khoản")
        elif payload.full_name:
            if payload.department_id:
                ensure_exists(db, Department, payload.department_id, "Department not found")
            member = Member(
                full_name=payload.full_name.strip(),
                email=email,
                phone=payload.phone,
                department_id=payload.department_id,
            )
            db.add(member)
            db.flush()

        account = Account(
            username=username,
            email=email,
            password_hash=auth_flow.hash_password(payload.password),
            role_id=role.id,
            member_id=member.id if member else None,
            status=AccountStatus.active.value,
            failed_login_attempts=0,
        )
        db.add(account)
        db.commit()
        db.refresh(account)
        logger.info("account_created account_id=%s role=%s", account.id, role.name)
        _emit(
            db,
            EventType.account_created,
            identity,
            account,
            f"Tạo tài khoản {account.username} ({role.name})",
            actor_name=identity.display_name,
        )
        return ServiceResult.created(account)

    @staticmethod
    @service_boundary
    def list(
        db: Session,
        identity: IdentityContext,
        search: str | None = None,
        role_id: str | None = None,
        status: str | None = None,
        include_deleted: bool = False,
        order_by: str = "created_at",
        order_dir: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> ServiceResult:
        ensure_allowed(identity, Action.account_manage)
        page, limit = clamp_page(page, limit)
        query = db.query(Account).options(selectinload(Account.role), selectinload(Account.member))
        if not include_deleted:
            query = query.filter(Account.is_deleted.is_(False))
        if role_id:
            query = query.filter(Account.role_id == coerce_uuid(role_id))
        if status:
            query = query.filter(Account.status == validate_enum(status, AccountStatus, "status").value)
        if search and search.strip():
            like_term = f"%{search.strip()}%"
            query = query.outerjoin(Member, Member.id == Account.member_id).filter(
                or_(
                    Account.username.ilike(like_term),
                    Account.email.ilike(like_term),
                    Member.full_name.ilike(like_term),
                )
            )
        total = query.count()
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": Account.created_at,
                "username": Account.username,
                "last_login_at": Account.last_login_at,
            },
        )
        items = apply_pagination(query, limit, (page - 1) * limit).all()
        return ServiceResult.ok(items, pagination=page_meta(page, limit, total))

    @staticmethod
    @service_boundary
    def get(db: Session, identity: IdentityContext, account_id: str) -> ServiceResult:
        ensure_allowed(identity, Action.account_manage)
        return ServiceResult.ok(_get_account(db, account_id))

    @staticmethod
    @service_boundary
    def update(db: Session, identity: IdentityContext, account_id: str, payload: AccountUpdate) -> ServiceResult:
        ensure_allowed(identity, Action.account_manage)
        account = _get_account(db, account_id)
        data = payload.model_dump(exclude_unset=True)
        previous_role = account.role.name if account.role else None

        if "email" in data:
            email = (data["email"] or "").strip() or None
            if email and _email_taken(db, email, exclude_id=account.id):
                raise ConflictError("Email đã tồn tại")
            account.email = email
        if data.get("role_id") is not None:
            role = ensure_exists(db, Role, data["role_id"], "Role not found")
            account.role_id = role.id
        if "member_id" in data:
            if data["member_id"] is None:
                account.member_id = None
            else:
                member = ensure_exists(db, Member, data["member_id"], "Member not found")
                if member.account is not None and member.account.id != account.id:
                    raise ValidationError("Nhân viên đã có tài khoản")
                account.member_id = member.id
        if "avatar_url" in data:
            account.avatar_url = data["avatar_url"]
        db.commit()
        db.refresh(account)

        current_role = account.role.name if account.role else None
        if current_role != previous_role:
            logger.info("account_role_changed account_id=%s from=%s to=%s", account.id, previous_role, current_role)
            _emit(
                db,
                EventType.account_role_changed,
                identity,
                account,
                f"Đổi vai trò {account.username}: {previous_role} → {current_role}",
            )
        _emit(db, EventType.account_updated, identity, account, f"Cập nhật tài khoản {account.username}")
        return ServiceResult.ok(account)

    @staticmethod
    @service_boundary
    def set_status(
        db: Session,
        identity: IdentityContext,
        account_id: str,
        payload: AccountStatusUpdate,
    ) -> ServiceResult:
        ensure_allowed(identity, Action.account_manage)
        account = _get_account(db, account_id)
        status = validate_enum(payload.status, AccountStatus, "status")
        if account.id == identity.account_id and status == AccountStatus.locked:
            raise ValidationError("Không thể khóa tài khoản của chính mình")
        account.status = status.value
        if status == AccountStatus.active:
            account.failed_login_attempts = 0
            account.locked_until = None
        db.commit()
        db.refresh(account)
        _emit(
            db,
            EventType.account_status_changed,
            identity,
            account,
            f"Đổi trạng thái tài khoản {account.username}: {status.value}",
        )
        return ServiceResult.ok(account)

    @staticmethod
    @service_boundary
    def delete(db: Session, identity: IdentityContext, account_id: str) -> ServiceResult:
        """Soft delete; the row stays for audit history."""
        ensure_allowed(identity, Action.account_manage)
        account = _get_account(db, account_id)
        if account.id == identity.account_id:
            raise PermissionDeniedError("Không thể xóa tài khoản của chính mình")
        account.is_deleted = True
        account.deleted_at = now()
        account.deleted_by_account_id = identity.account_id
        db.commit()
        _emit(db, EventType.account_deleted, identity, account, f"Xóa tài khoản {account.username}")
        return ServiceResult.ok(message="Đã xóa tài khoản")

    @staticmethod
    @service_boundary
    def restore(db: Session, identity: IdentityContext, account_id: str) -> ServiceResult:
        ensure_allowed(identity, Action.account_manage)
        account = _get_account(db, account_id, include_deleted=True)
        if not account.is_deleted:
            raise ValidationError("Tài khoản chưa bị xóa")
        account.is_deleted = False
        account.deleted_at = None
        account.deleted_by_account_id = None
        db.commit()
        db.refresh(account)
        _emit(db, EventType.account_restored, identity, account, f"Khôi phục tài khoản {account.username}")
        return ServiceResult.ok(account)

    @staticmethod
    @service_boundary
    def roles(db: Session, identity: IdentityContext) -> ServiceResult:
        ensure_allowed(identity, Action.account_manage)
        return ServiceResult.ok(db.query(Role).order_by(Role.name).all())


accounts = Accounts()
