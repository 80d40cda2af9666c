"""Tests for the audit logger and the system log query."""

from sqlalchemy.exc import OperationalError

from app.models.audit import SystemLog
from app.services.audit import AuditLogger, LogAction, action_label, audit_logger, coerce_action, system_logs


class _BrokenSession:
    def __init__(self):
        self.rolled_back = False

    def add(self, entry):
        raise OperationalError("INSERT INTO system_logs", {}, Exception("disk full"))

    def rollback(self):
        self.rolled_back = True


def _seed(db_session, admin_account, staff_account, leader_account):
    audit_logger.log(db_session, LogAction.user_create, admin_account.id, "Tạo tài khoản", "account", staff_account.id)
    audit_logger.log(db_session, LogAction.login, staff_account.id, "Đăng nhập", ip_address="10.0.0.2")
    audit_logger.log(db_session, LogAction.task_update, leader_account.id, "Cập nhật công việc", "task", "t-1")


class TestAuditLogger:
    def test_writes_entry(self, db_session, staff_account):
        entry = audit_logger.log(db_session, "login", staff_account.id, "Đăng nhập", ip_address="10.0.0.9")

        assert entry is not None
        stored = db_session.query(SystemLog).one()
        assert (stored.action, stored.ip_address) == ("login", "10.0.0.9")

    def test_unknown_action_is_recorded_as_unknown(self, db_session, staff_account):
        audit_logger.log(db_session, "teleport", staff_account.id, "???")
        assert db_session.query(SystemLog).one().action == "unknown"

    def test_failures_never_reach_the_caller(self):
        session = _BrokenSession()

        assert AuditLogger().log(session, LogAction.login, None, "Đăng nhập") is None
        assert session.rolled_back

    def test_coerce_and_label(self):
        assert coerce_action("role_change") is LogAction.role_change
        assert coerce_action("nope") is LogAction.unknown
        assert action_label(LogAction.escalation) == "Báo cáo vượt cấp"


class TestSystemLogQuery:
    def test_admin_sees_everything(
        self, db_session, identity_for, admin_account, staff_account, leader_account
    ):
        _seed(db_session, admin_account, staff_account, leader_account)

        result = system_logs.list(db_session, identity_for(admin_account))

        assert result.status == 200
        assert result.meta["pagination"]["total"] == 3

        by_actor = system_logs.list(db_session, identity_for(admin_account), actor_id=str(leader_account.id))
        assert [log.action for log in by_actor.data] == ["task_update"]

        by_action = system_logs.list(db_session, identity_for(admin_account), action="login")
        assert [log.ip_address for log in by_action.data] == ["10.0.0.2"]

        by_target = system_logs.list(db_session, identity_for(admin_account), target_id=str(staff_account.id))
        assert [log.action for log in by_target.data] == ["user_create"]

    def test_others_see_only_their_own_entries(
        self, db_session, identity_for, admin_account, staff_account, leader_account
    ):
        _seed(db_session, admin_account, staff_account, leader_account)

        result = system_logs.list(db_session, identity_for(staff_account), actor_id=str(admin_account.id))

        assert [log.action for log in result.data] == ["login"]

    def test_date_window(self, db_session, identity_for, admin_account, staff_account, leader_account):
        _seed(db_session, admin_account, staff_account, leader_account)

        future = system_logs.list(db_session, identity_for(admin_account), start_date="2999-01-01T00:00:00+00:00")
        assert future.data == []

        unparsable = system_logs.list(db_session, identity_for(admin_account), start_date="yesterday")
        assert unparsable.status == 400
        assert unparsable.message == "startDate không hợp lệ: yesterday"

        bad_end = system_logs.list(db_session, identity_for(admin_account), end_date="31/12/2026")
        assert bad_end.status == 400

    def test_action_types(self):
        types = system_logs.action_types().data

        values = [item["value"] for item in types]
        assert "unknown" not in values
        assert {"key": "LOGIN_FAILED", "value": "login_failed", "label": "Đăng nhập thất bại"} in types
        assert len(values) == len(set(values))
