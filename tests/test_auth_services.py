"""Tests for login lockout and the password flows."""

from datetime import timedelta

import pytest

from app.models.audit import SystemLog
from app.models.notification import Notification
from app.schemas.auth import ChangePasswordRequest, ForgotPasswordRequest, LoginRequest, ResetPasswordRequest
from app.services import auth_flow
from app.services.auth import FORGOT_PASSWORD_MESSAGE, INVALID_CREDENTIALS, auth
from app.services.common import now

DEFAULT_PASSWORD = "secret123"


def _login(db_session, username, password):
    return auth.login(db_session, LoginRequest(username=username, password=password), ip_address="10.0.0.1")


class TestLogin:
    def test_success_issues_tokens(self, db_session, staff_account):
        result = _login(db_session, "staff", DEFAULT_PASSWORD)

        assert result.status == 200
        payload = auth_flow.decode_access_token(result.data["access_token"])
        assert payload["sub"] == str(staff_account.id)
        assert payload["role"] == "Staff"
        assert result.data["account"].id == staff_account.id
        db_session.refresh(staff_account)
        assert staff_account.last_login_at is not None
        log = db_session.query(SystemLog).filter(SystemLog.action == "login").one()
        assert log.ip_address == "10.0.0.1"

    def test_unknown_account(self, db_session, roles):
        result = _login(db_session, "nobody", "whatever")
        assert result.status == 401
        assert result.message == INVALID_CREDENTIALS

    def test_missing_credentials(self, db_session):
        result = auth.login(db_session, LoginRequest(username="staff"))
        assert result.status == 400

    def test_deleted_account_cannot_login(self, db_session, staff_account):
        staff_account.is_deleted = True
        db_session.commit()
        assert _login(db_session, "staff", DEFAULT_PASSWORD).status == 401

    def test_admin_locked_account(self, db_session, staff_account):
        staff_account.status = "locked"
        db_session.commit()

        result = _login(db_session, "staff", DEFAULT_PASSWORD)
        assert result.status == 423
        assert result.message == "Tài khoản đã bị khóa"


class TestLockout:
    def test_five_failures_lock_the_account(self, db_session, staff_account, admin_account):
        statuses = [_login(db_session, "staff", "wrong").status for _ in range(5)]
        assert statuses == [401, 401, 401, 401, 423]

        db_session.refresh(staff_account)
        assert staff_account.failed_login_attempts == 5
        assert staff_account.locked_until is not None

        sixth = _login(db_session, "staff", DEFAULT_PASSWORD)
        assert sixth.status == 423
        assert "30 phút" in sixth.message

        alerts = db_session.query(Notification).filter(Notification.type == "login_failed_alert").all()
        assert [row.recipient_account_id for row in alerts] == [admin_account.id]
        assert db_session.query(SystemLog).filter(SystemLog.action == "account_locked").count() == 1
        assert db_session.query(SystemLog).filter(SystemLog.action == "login_failed").count() == 4

    def test_success_after_expiry_resets_counter(self, db_session, staff_account):
        staff_account.failed_login_attempts = 5
        staff_account.locked_until = now() - timedelta(minutes=1)
        db_session.commit()

        result = _login(db_session, "staff", DEFAULT_PASSWORD)

        assert result.status == 200
        db_session.refresh(staff_account)
        assert staff_account.failed_login_attempts == 0
        assert staff_account.locked_until is None

    def test_failure_after_expiry_starts_a_new_count(self, db_session, staff_account):
        staff_account.failed_login_attempts = 5
        staff_account.locked_until = now() - timedelta(minutes=1)
        db_session.commit()

        assert _login(db_session, "staff", "wrong").status == 401
        db_session.refresh(staff_account)
        assert staff_account.failed_login_attempts == 1

    def test_success_resets_partial_count(self, db_session, staff_account):
        _login(db_session, "staff", "wrong")
        _login(db_session, "staff", "wrong")

        assert _login(db_session, "staff", DEFAULT_PASSWORD).status == 200
        db_session.refresh(staff_account)
        assert staff_account.failed_login_attempts == 0


class TestPasswords:
    def test_change_password(self, db_session, identity_for, staff_account):
        identity = identity_for(staff_account)

        wrong = auth.change_password(
            db_session, identity, ChangePasswordRequest(old_password="nope", new_password="another1")
        )
        assert wrong.status == 400
        assert wrong.message == "Mật khẩu cũ không đúng"

        short = auth.change_password(
            db_session, identity, ChangePasswordRequest(old_password=DEFAULT_PASSWORD, new_password="abc")
        )
        assert short.status == 400

        ok = auth.change_password(
            db_session, identity, ChangePasswordRequest(old_password=DEFAULT_PASSWORD, new_password="another1")
        )
        assert ok.status == 200
        assert _login(db_session, "staff", "another1").status == 200

    def test_forgot_password_never_reveals_existence(self, db_session, staff_account):
        unknown = auth.forgot_password(db_session, ForgotPasswordRequest(email="ghost@example.com"))
        known = auth.forgot_password(db_session, ForgotPasswordRequest(email="staff@example.com"))

        assert unknown.status == known.status == 200
        assert unknown.message == known.message == FORGOT_PASSWORD_MESSAGE
        db_session.refresh(staff_account)
        assert staff_account.reset_token

    def test_forgot_password_requires_email(self, db_session):
        assert auth.forgot_password(db_session, ForgotPasswordRequest(email=" ")).status == 400

    def test_reset_password_unlocks(self, db_session, staff_account):
        auth.forgot_password(db_session, ForgotPasswordRequest(email="staff@example.com"))
        db_session.refresh(staff_account)
        token = staff_account.reset_token
        staff_account.failed_login_attempts = 5
        staff_account.locked_until = now() + timedelta(minutes=20)
        db_session.commit()

        result = auth.reset_password(db_session, ResetPasswordRequest(token=token, new_password="fresh-pass"))

        assert result.status == 200
        db_session.refresh(staff_account)
        assert staff_account.reset_token is None
        assert staff_account.locked_until is None
        assert _login(db_session, "staff", "fresh-pass").status == 200

    @pytest.mark.parametrize(
        "expires_delta,expected",
        [
            (timedelta(minutes=-1), "Link đặt lại mật khẩu đã hết hạn"),
            (None, "Link đặt lại mật khẩu không hợp lệ"),
        ],
    )
    def test_reset_password_rejects_bad_tokens(self, db_session, staff_account, expires_delta, expected):
        if expires_delta is not None:
            staff_account.reset_token = "tok"
            staff_account.reset_token_expires_at = now() + expires_delta
            db_session.commit()

        result = auth.reset_password(db_session, ResetPasswordRequest(token="tok", new_password="fresh-pass"))
        assert result.status == 400
        assert result.message == expected

    def test_me(self, db_session, identity_for, staff_account):
        result = auth.me(db_session, identity_for(staff_account))
        assert result.status == 200
        assert result.data.username == "staff"
