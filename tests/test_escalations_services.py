from app.models.audit import SystemLog
from app.models.notification import Notification
from app.schemas.escalations import EscalateToLeader, EscalateToPmo
from app.services.escalations import escalations


def _notified(db_session, notification_type):
    rows = db_session.query(Notification).filter(Notification.type == notification_type).all()
    return sorted(row.recipient_account_id for row in rows)


class TestEscalateToLeader:
    def test_reaches_department_leaders_only(
        self, db_session, identity_for, task, staff_account, leader_account, other_leader_account
    ):
        result = escalations.to_leader(
            db_session, identity_for(staff_account), EscalateToLeader(task_id=task.id, message="Blocked on API keys")
        )

        assert result.status == 200
        assert result.data == {"leadersNotified": 1}
        assert _notified(db_session, "escalate_to_leader") == [leader_account.id]
        notification = db_session.query(Notification).filter(Notification.type == "escalate_to_leader").one()
        assert "Blocked on API keys" in notification.message
        assert db_session.query(SystemLog).filter(SystemLog.action == "escalation").count() == 1

    def test_no_leader_in_department(self, db_session, identity_for, task, staff_account, other_leader_account):
        result = escalations.to_leader(
            db_session, identity_for(staff_account), EscalateToLeader(task_id=task.id, message="Help")
        )

        assert result.status == 404
        assert result.message == "Không tìm thấy Leader trong phòng ban"
        assert _notified(db_session, "escalate_to_leader") == []

    def test_requires_message_and_task(self, db_session, identity_for, task, staff_account, leader_account):
        identity = identity_for(staff_account)
        assert escalations.to_leader(db_session, identity, EscalateToLeader(task_id=task.id)).status == 400
        assert escalations.to_leader(db_session, identity, EscalateToLeader(message="Help")).status == 400

    def test_only_staff_escalates_to_leader(self, db_session, identity_for, task, leader_account):
        result = escalations.to_leader(
            db_session, identity_for(leader_account), EscalateToLeader(task_id=task.id, message="Help")
        )
        assert result.status == 403
        assert result.message == "Chỉ Staff mới có thể escalate lên Leader"


class TestEscalateToPmo:
    def test_leader_reaches_pmo(self, db_session, identity_for, project, task, leader_account, pmo_account):
        result = escalations.to_pmo(
            db_session,
            identity_for(leader_account),
            EscalateToPmo(task_id=task.id, project_id=project.id, message="Vendor outage"),
        )

        assert result.status == 200
        assert result.data == {"pmosNotified": 1}
        assert _notified(db_session, "escalate_to_pmo") == [pmo_account.id]

    def test_message_only_is_enough(self, db_session, identity_for, leader_account, pmo_account):
        result = escalations.to_pmo(db_session, identity_for(leader_account), EscalateToPmo(message="Budget risk"))
        assert result.status == 200

    def test_staff_cannot_escalate_to_pmo(self, db_session, identity_for, staff_account, pmo_account):
        result = escalations.to_pmo(db_session, identity_for(staff_account), EscalateToPmo(message="Help"))
        assert result.status == 403
