"""Tests for notification routing and the inbox operations."""

from dependency_injector import providers

from app.container import container
from app.models.audit import SystemLog
from app.models.notification import Notification
from app.models.organization import Member
from app.schemas.projects import ProjectCreate, ProjectUpdate
from app.schemas.tasks import CommentCreate, TaskUpdate
from app.services.audit import audit_logger
from app.services.events import EventBus
from app.services.events.handlers import AuditHandler
from app.services.notifications import (
    NotificationRouter,
    NotificationType,
    RoutingContext,
    notification_type_for_status,
    notifications,
)
from app.services.projects import projects
from app.services.task_items import comments
from app.services.tasks import tasks


def _notifications(db_session, notification_type=None):
    query = db_session.query(Notification)
    if notification_type is not None:
        query = query.filter(Notification.type == notification_type)
    return query.all()


def _recipients(db_session, notification_type):
    return sorted(str(row.recipient_account_id) for row in _notifications(db_session, notification_type))


class TestStatusMapping:
    def test_status_to_type(self):
        assert notification_type_for_status("review_request") == NotificationType.review_requested
        assert notification_type_for_status("waiting-approval") == NotificationType.review_requested
        assert notification_type_for_status("approved") == NotificationType.review_completed
        assert notification_type_for_status("rejected") == NotificationType.task_rejected
        assert notification_type_for_status("returned") == NotificationType.task_returned
        assert notification_type_for_status("done") == NotificationType.task_completed
        assert notification_type_for_status("on hold") == NotificationType.status_changed


class TestTaskStatusRouting:
    def test_review_request_reaches_department_leaders_once(
        self,
        db_session,
        identity_for,
        make_task,
        project,
        staff_account,
        leader_account,
        other_leader_account,
    ):
        task = make_task(project, assignees=[staff_account], status="in_progress")

        result = tasks.update(db_session, identity_for(staff_account), str(task.id), TaskUpdate(status="review_request"))

        assert result.status == 200
        rows = _notifications(db_session, "review_requested")
        assert [row.recipient_account_id for row in rows] == [leader_account.id]
        assert rows[0].sender_account_id == staff_account.id
        assert rows[0].task_id == task.id

    def test_approval_notifies_members_except_actor(
        self,
        db_session,
        identity_for,
        make_task,
        project,
        staff_account,
        second_staff_account,
        leader_account,
    ):
        task = make_task(
            project,
            assignees=[staff_account, second_staff_account, leader_account],
            status="review_request",
        )

        result = tasks.update(db_session, identity_for(leader_account), str(task.id), TaskUpdate(status="approved"))

        assert result.status == 200
        assert _recipients(db_session, "review_completed") == sorted(
            [str(staff_account.id), str(second_staff_account.id)]
        )

    def test_noop_status_write_sends_nothing(self, db_session, identity_for, make_task, project, staff_account, leader_account):
        task = make_task(project, assignees=[staff_account], status="in_progress")

        result = tasks.update(db_session, identity_for(staff_account), str(task.id), TaskUpdate(status="In Progress"))

        assert result.status == 200
        assert _notifications(db_session) == []

    def test_completion_goes_to_leaders(self, db_session, identity_for, make_task, project, staff_account, leader_account):
        task = make_task(project, assignees=[staff_account], status="in_progress")

        tasks.update(db_session, identity_for(staff_account), str(task.id), TaskUpdate(status="done"))

        assert _recipients(db_session, "task_completed") == [str(leader_account.id)]


class TestRecipientResolution:
    def test_member_without_account_is_skipped(self, db_session, department, staff_account):
        orphan = Member(full_name="No Login", department_id=department.id)
        db_session.add(orphan)
        db_session.commit()

        router = NotificationRouter()
        created = router.notify(
            db_session,
            NotificationType.task_assigned,
            None,
            RoutingContext(task_title="Audit", member_ids=[orphan.id, staff_account.member_id]),
        )

        assert [row.recipient_account_id for row in created] == [staff_account.id]

    def test_actor_is_never_a_recipient(self, db_session, staff_account):
        router = NotificationRouter()
        recipients = router.resolve_recipients(
            db_session,
            NotificationType.task_assigned,
            staff_account.id,
            RoutingContext(member_ids=[staff_account.member_id]),
        )
        assert recipients == []

    def test_department_scoped_route_without_department_is_empty(self, db_session, leader_account):
        router = NotificationRouter()
        assert router.resolve_recipients(db_session, NotificationType.review_requested, None, RoutingContext()) == []

    def test_locked_accounts_are_not_recipients(self, db_session, admin_account, director_account, pmo_account):
        director_account.status = "locked"
        db_session.commit()

        router = NotificationRouter()
        recipients = router.resolve_recipients(
            db_session, NotificationType.project_created, pmo_account.id, RoutingContext(project_name="X")
        )
        assert recipients == [admin_account.id]

    def test_unrouted_type_creates_nothing(self, db_session, admin_account):
        router = NotificationRouter()
        assert router.notify(db_session, NotificationType.kpi_alert, None, RoutingContext()) == []

    def test_message_template(self):
        router = NotificationRouter()
        message = router.build_message(
            NotificationType.task_rejected, RoutingContext(task_title="Landing", reason="Thiếu ảnh")
        )
        assert message == 'Công việc "Landing" bị từ chối: Thiếu ảnh'


class TestProjectRouting:
    def test_project_created_notifies_director_and_admin(
        self, db_session, identity_for, department, pmo_account, director_account, admin_account
    ):
        result = projects.create(
            db_session,
            identity_for(pmo_account),
            ProjectCreate(name="Data warehouse", department_id=department.id),
        )

        assert result.status == 201
        assert _recipients(db_session, "project_created") == sorted([str(director_account.id), str(admin_account.id)])

    def test_director_approval_notifies_pmo_and_department_leader(
        self,
        db_session,
        identity_for,
        project,
        pmo_account,
        director_account,
        leader_account,
        other_leader_account,
    ):
        result = projects.update(
            db_session, identity_for(director_account), str(project.id), ProjectUpdate(status="approved")
        )

        assert result.status == 200
        assert _recipients(db_session, "project_director_approved") == sorted(
            [str(pmo_account.id), str(leader_account.id)]
        )

    def test_director_rejection_notifies_pmo_only(
        self, db_session, identity_for, project, pmo_account, director_account, leader_account
    ):
        projects.update(
            db_session,
            identity_for(director_account),
            str(project.id),
            ProjectUpdate(status="rejected", reason="Vượt ngân sách"),
        )

        rows = _notifications(db_session, "project_director_rejected")
        assert [row.recipient_account_id for row in rows] == [pmo_account.id]
        assert "Vượt ngân sách" in rows[0].message


class _ExplodingHandler:
    def handle(self, db, event):
        raise RuntimeError("notifier down")


class TestHandlerIsolation:
    def test_notifier_failure_keeps_primary_change_and_audit(
        self, db_session, identity_for, make_task, project, staff_account, leader_account
    ):
        task = make_task(project, assignees=[staff_account], status="in_progress")
        bus = EventBus([_ExplodingHandler(), AuditHandler(audit_logger)])

        with container.event_bus.override(providers.Object(bus)):
            result = tasks.update(
                db_session, identity_for(staff_account), str(task.id), TaskUpdate(status="review_request")
            )

        assert result.status == 200
        db_session.refresh(task)
        assert task.status == "review_request"
        assert _notifications(db_session) == []
        assert db_session.query(SystemLog).filter(SystemLog.action == "task_status_change").count() == 1

    def test_comment_notifies_other_members(
        self, db_session, identity_for, make_task, project, staff_account, second_staff_account
    ):
        task = make_task(project, assignees=[staff_account, second_staff_account], status="in_progress")

        result = comments.add(db_session, identity_for(staff_account), str(task.id), CommentCreate(content="Đã xong phần 1"))

        assert result.status == 201
        assert _recipients(db_session, "comment_new") == [str(second_staff_account.id)]


class TestInbox:
    def _seed(self, db_session, account, count=2):
        for index in range(count):
            db_session.add(Notification(type="system_alert", recipient_account_id=account.id, message=f"m{index}"))
        db_session.commit()

    def test_list_and_unread_count(self, db_session, staff_account, second_staff_account):
        self._seed(db_session, staff_account, 3)
        self._seed(db_session, second_staff_account, 1)

        listed = notifications.list(db_session, staff_account.id)
        assert listed.status == 200
        assert len(listed.data) == 3
        assert listed.meta["pagination"]["total"] == 3
        assert notifications.unread_count(db_session, staff_account.id).data == {"count": 3}

    def test_mark_read_and_read_all(self, db_session, staff_account):
        self._seed(db_session, staff_account, 2)
        first = _notifications(db_session)[0]

        assert notifications.mark_read(db_session, str(first.id), staff_account.id).status == 200
        assert notifications.unread_count(db_session, staff_account.id).data == {"count": 1}
        assert notifications.mark_all_read(db_session, staff_account.id).data == {"updated": 1}
        assert notifications.list(db_session, staff_account.id, unread_only=True).data == []

    def test_cannot_touch_someone_elses_notification(self, db_session, staff_account, second_staff_account):
        self._seed(db_session, staff_account, 1)
        row = _notifications(db_session)[0]

        result = notifications.delete(db_session, str(row.id), second_staff_account.id)
        assert result.status == 404
        assert notifications.delete(db_session, str(row.id), staff_account.id).status == 200
        assert _notifications(db_session) == []
