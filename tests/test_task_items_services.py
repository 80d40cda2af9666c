"""Tests for checklist items, labels, attachments and comments on a task."""

import uuid

from app.models.audit import SystemLog
from app.models.notification import Notification
from app.models.projects import Label, TaskAttachment, TaskComment, TaskLabel
from app.schemas.tasks import (
    AttachmentCreate,
    ChecklistItemCreate,
    ChecklistItemUpdate,
    CommentCreate,
    CommentUpdate,
    TaskDetail,
    TaskLabelAdd,
)
from app.services.task_items import attachments, checklist, comments, labels
from app.services.tasks import tasks


def _actions(db_session):
    return [row.action for row in db_session.query(SystemLog).all()]


class TestChecklist:
    def test_add_update_delete(self, db_session, identity_for, task, staff_account):
        identity = identity_for(staff_account)

        first = checklist.add(db_session, identity, str(task.id), ChecklistItemCreate(content="Wireframe"))
        second = checklist.add(db_session, identity, str(task.id), ChecklistItemCreate(content="Review"))
        assert first.status == second.status == 201
        assert (first.data.position, second.data.position) == (1, 2)

        done = checklist.update(
            db_session, identity, str(task.id), str(first.data.id), ChecklistItemUpdate(is_done=True)
        )
        assert done.data.is_done

        assert checklist.delete(db_session, identity, str(task.id), str(second.data.id)).status == 200
        assert sorted(_actions(db_session)) == ["checklist_add", "checklist_add", "checklist_delete", "checklist_update"]

    def test_empty_content(self, db_session, identity_for, task, staff_account):
        result = checklist.add(db_session, identity_for(staff_account), str(task.id), ChecklistItemCreate(content=" "))
        assert result.status == 400

    def test_item_must_belong_to_task(self, db_session, identity_for, task, pmo_account):
        result = checklist.update(
            db_session, identity_for(pmo_account), str(task.id), str(uuid.uuid4()), ChecklistItemUpdate(is_done=True)
        )
        assert result.status == 404

    def test_unassigned_staff_denied(self, db_session, identity_for, task, second_staff_account):
        result = checklist.add(
            db_session, identity_for(second_staff_account), str(task.id), ChecklistItemCreate(content="x")
        )
        assert result.status == 403


class TestLabels:
    def test_add_reuses_label_case_insensitively(self, db_session, identity_for, task, pmo_account, staff_account):
        identity = identity_for(pmo_account)

        first = labels.add(db_session, identity, str(task.id), TaskLabelAdd(name="Urgent", color="red"))
        again = labels.add(db_session, identity, str(task.id), TaskLabelAdd(name="urgent"))

        assert first.status == again.status == 201
        assert db_session.query(Label).count() == 1
        assert db_session.query(TaskLabel).count() == 1
        rows = db_session.query(Notification).filter(Notification.type == "label_added").all()
        assert [row.recipient_account_id for row in rows] == [staff_account.id]

    def test_remove(self, db_session, identity_for, task, pmo_account):
        identity = identity_for(pmo_account)
        label = labels.add(db_session, identity, str(task.id), TaskLabelAdd(name="Design")).data

        assert labels.remove(db_session, identity, str(task.id), str(label.id)).status == 200
        assert labels.remove(db_session, identity, str(task.id), str(label.id)).status == 404
        assert db_session.query(Label).count() == 1


class TestAttachments:
    def test_add_and_soft_delete(self, db_session, identity_for, task, staff_account, leader_account):
        identity = identity_for(staff_account)

        added = attachments.add(
            db_session,
            identity,
            str(task.id),
            AttachmentCreate(file_name="brief.pdf", file_url="/uploads/brief.pdf", size_bytes=1024),
        )
        assert added.status == 201
        assert added.data.uploaded_by_account_id == staff_account.id

        assert attachments.delete(db_session, identity, str(task.id), str(added.data.id)).status == 200
        stored = db_session.get(TaskAttachment, added.data.id)
        assert (stored.is_deleted, stored.deleted_by_account_id) == (True, staff_account.id)
        assert attachments.delete(db_session, identity, str(task.id), str(added.data.id)).status == 404

    def test_requires_name_and_url(self, db_session, identity_for, task, pmo_account):
        result = attachments.add(db_session, identity_for(pmo_account), str(task.id), AttachmentCreate(file_name="a"))
        assert result.status == 400
        assert result.message == "Missing required fields: fileName, fileUrl"


class TestComments:
    def test_director_may_comment_on_visible_task(self, db_session, identity_for, task, director_account, staff_account):
        result = comments.add(db_session, identity_for(director_account), str(task.id), CommentCreate(content="Nice"))

        assert result.status == 201
        rows = db_session.query(Notification).filter(Notification.type == "comment_new").all()
        assert [row.recipient_account_id for row in rows] == [staff_account.id]

    def test_only_author_edits_or_deletes(self, db_session, identity_for, task, staff_account, pmo_account):
        comment = comments.add(db_session, identity_for(staff_account), str(task.id), CommentCreate(content="v1")).data

        foreign = comments.update(
            db_session, identity_for(pmo_account), str(task.id), str(comment.id), CommentUpdate(content="hijack")
        )
        assert foreign.status == 403
        assert foreign.message == "Không có quyền sửa bình luận này"

        edited = comments.update(
            db_session, identity_for(staff_account), str(task.id), str(comment.id), CommentUpdate(content="v2")
        )
        assert edited.data.content == "v2"

        assert comments.delete(db_session, identity_for(pmo_account), str(task.id), str(comment.id)).status == 403
        assert comments.delete(db_session, identity_for(staff_account), str(task.id), str(comment.id)).status == 200
        assert db_session.get(TaskComment, comment.id).deleted_by_account_id == staff_account.id
        assert comments.list(db_session, identity_for(staff_account), str(task.id)).data == []

    def test_detail_hides_deleted_children(self, db_session, identity_for, task, staff_account):
        identity = identity_for(staff_account)
        kept = comments.add(db_session, identity, str(task.id), CommentCreate(content="keep")).data
        dropped = comments.add(db_session, identity, str(task.id), CommentCreate(content="drop")).data
        comments.delete(db_session, identity, str(task.id), str(dropped.id))
        db_session.expire_all()

        detail = tasks.get(db_session, identity, str(task.id)).data
        rendered = TaskDetail.model_validate(detail, from_attributes=True).model_dump(mode="json", by_alias=True)

        assert [item["id"] for item in rendered["comments"]] == [str(kept.id)]
        assert rendered["members"][0]["role"] == "lead"
        assert "checklistItems" in rendered
