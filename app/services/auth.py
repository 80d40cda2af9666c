"""Login with lockout, self-service password flows and the current account."""

import logging
import math
from datetime import timedelta

from sqlalchemy.orm import Session, selectinload

from app.config import settings
from app.errors import AuthenticationError, LockedError, NotFoundError, ValidationError
from app.metrics import LOGIN_ATTEMPTS
from app.models.auth import Account, AccountStatus
from app.schemas.auth import ChangePasswordRequest, ForgotPasswordRequest, LoginRequest, ResetPasswordRequest
from app.services import auth_flow
from app.services.common import as_utc, now
from app.services.events import emit_event
from app.services.events.types import EventType
from app.services.identity import IdentityContext
from app.services.result import ServiceResult, service_boundary

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Sai tài khoản hoặc mật khẩu"
FORGOT_PASSWORD_MESSAGE = "Nếu email tồn tại, hướng dẫn đặt lại mật khẩu sẽ được gửi."


def _lockout_message(minutes: int) -> str:
    return f"Tài khoản đã bị khóa do đăng nhập sai nhiều lần. Vui lòng thử lại sau {minutes} phút."


def _account_query(db: Session):
    return (
        db.query(Account)
        .options(selectinload(Account.role), selectinload(Account.member))
        .filter(Account.is_deleted.is_(False))
    )


class Auth:
    @staticmethod
    @service_boundary
    def login(db: Session, payload: LoginRequest, ip_address: str | None = None) -> ServiceResult:
        username = (payload.username or "").strip()
        if not username or not payload.password:
            raise ValidationError("Thiếu username/password")
        account = _account_query(db).filter(Account.username == username).first()
        if account is None:
            LOGIN_ATTEMPTS.labels(outcome="unknown_account").inc()
            raise AuthenticationError(INVALID_CREDENTIALS)

        current = now()
        locked_until = as_utc(account.locked_until)
        if locked_until is not None:
            if locked_until > current:
                LOGIN_ATTEMPTS.labels(outcome="locked").inc()
                remaining = math.ceil((locked_until - current).total_seconds() / 60)
                raise LockedError(_lockout_message(max(remaining, 1)))
            # Lock window elapsed; start counting afresh.
            account.locked_until = None
            account.failed_login_attempts = 0
        if account.status == AccountStatus.locked.value:
            LOGIN_ATTEMPTS.labels(outcome="locked").inc()
            raise LockedError("Tài khoản đã bị khóa")

        if not auth_flow.verify_password(payload.password, account.password_hash):
            account.failed_login_attempts = (account.failed_login_attempts or 0) + 1
            if account.failed_login_attempts >= settings.login_max_failed_attempts:
                account.locked_until = current + timedelta(minutes=settings.login_lockout_minutes)
                db.commit()
                LOGIN_ATTEMPTS.labels(outcome="locked_out").inc()
                logger.warning(
                    "account_locked account_id=%s attempts=%s", account.id, account.failed_login_attempts
                )
                emit_event(
                    db,
                    EventType.account_locked,
                    {
                        "username": account.username,
                        "target_type": "account",
                        "target_id": str(account.id),
                        "ip_address": ip_address,
                        "log_message": f"Tài khoản {account.username} bị khóa tạm thời do đăng nhập sai nhiều lần",
                    },
                    actor_account_id=account.id,
                )
                raise LockedError(_lockout_message(settings.login_lockout_minutes))
            db.commit()
            LOGIN_ATTEMPTS.labels(outcome="bad_password").inc()
            emit_event(
                db,
                EventType.login_failed,
                {
                    "target_type": "account",
                    "target_id": str(account.id),
                    "ip_address": ip_address,
                    "log_message": (
                        f"Đăng nhập thất bại ({account.failed_login_attempts}/"
                        f"{settings.login_max_failed_attempts})"
                    ),
                },
                actor_account_id=account.id,
            )
            raise AuthenticationError(INVALID_CREDENTIALS)

        account.failed_login_attempts = 0
        account.locked_until = None
        account.last_login_at = current
        account.last_seen_at = current
        db.commit()
        db.refresh(account)
        LOGIN_ATTEMPTS.labels(outcome="success").inc()
        tokens = auth_flow.issue_tokens(account)
        emit_event(
            db,
            EventType.login,
            {
                "target_type": "account",
                "target_id": str(account.id),
                "ip_address": ip_address,
                "log_message": f"{account.username} đăng nhập",
            },
            actor_account_id=account.id,
        )
        return ServiceResult.ok(
            {
                "access_token": tokens["access_token"],
                "refresh_token": tokens["refresh_token"],
                "account": account,
            }
        )

    @staticmethod
    @service_boundary
    def me(db: Session, identity: IdentityContext) -> ServiceResult:
        account = _account_query(db).filter(Account.id == identity.account_id).first()
        if account is None:
            raise NotFoundError("Không tìm thấy tài khoản")
        return ServiceResult.ok(account)

    @staticmethod
    @service_boundary
    def change_password(db: Session, identity: IdentityContext, payload: ChangePasswordRequest) -> ServiceResult:
        if not payload.old_password or not payload.new_password:
            raise ValidationError("Thiếu mật khẩu cũ hoặc mật khẩu mới")
        account = _account_query(db).filter(Account.id == identity.account_id).first()
        if account is None:
            raise NotFoundError("Không tìm thấy tài khoản")
        if not auth_flow.verify_password(payload.old_password, account.password_hash):
            raise ValidationError("Mật khẩu cũ không đúng")
        auth_flow.check_password_strength(payload.new_password)
        account.password_hash = auth_flow.hash_password(payload.new_password)
        db.commit()
        emit_event(
            db,
            EventType.password_changed,
            {"target_type": "account", "target_id": str(account.id), "log_message": "Đổi mật khẩu"},
            actor_account_id=account.id,
        )
        return ServiceResult.ok(message="Đổi mật khẩu thành công")

    @staticmethod
    @service_boundary
    def forgot_password(db: Session, payload: ForgotPasswordRequest, ip_address: str | None = None) -> ServiceResult:
        email = (payload.email or "").strip()
        if not email:
            raise ValidationError("Vui lòng nhập email")
        account = _account_query(db).filter(Account.email == email).first()
        if account is not None:
            token = auth_flow.generate_reset_token()
            account.reset_token = token
            account.reset_token_expires_at = now() + timedelta(minutes=settings.password_reset_ttl_minutes)
            db.commit()
            # Delivery is handled outside this service.
            logger.debug("password_reset_token_issued account_id=%s token=%s", account.id, token)
            emit_event(
                db,
                EventType.password_reset_requested,
                {
                    "target_type": "account",
                    "target_id": str(account.id),
                    "ip_address": ip_address,
                    "log_message": "Yêu cầu đặt lại mật khẩu",
                },
                actor_account_id=account.id,
            )
        return ServiceResult.ok(message=FORGOT_PASSWORD_MESSAGE)

    @staticmethod
    @service_boundary
    def reset_password(db: Session, payload: ResetPasswordRequest) -> ServiceResult:
        if not payload.token or not payload.new_password:
            raise ValidationError("Thiếu token hoặc mật khẩu mới")
        account = _account_query(db).filter(Account.reset_token == payload.token).first()
        if account is None:
            raise ValidationError("Link đặt lại mật khẩu không hợp lệ")
        expires_at = as_utc(account.reset_token_expires_at)
        if expires_at is None or expires_at < now():
            raise ValidationError("Link đặt lại mật khẩu đã hết hạn")
        auth_flow.check_password_strength(payload.new_password)
        account.password_hash = auth_flow.hash_password(payload.new_password)
        account.reset_token = None
        account.reset_token_expires_at = None
        account.failed_login_attempts = 0
        account.locked_until = None
        db.commit()
        emit_event(
            db,
            EventType.password_reset,
            {"target_type": "account", "target_id": str(account.id), "log_message": "Đặt lại mật khẩu"},
            actor_account_id=account.id,
        )
        return ServiceResult.ok(message="Đặt lại mật khẩu thành công")


auth = Auth()
