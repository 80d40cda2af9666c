from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.schemas.tasks import (
    AttachmentCreate,
    AttachmentRead,
    ChecklistItemCreate,
    ChecklistItemRead,
    ChecklistItemUpdate,
    CommentCreate,
    CommentRead,
    CommentUpdate,
    LabelRead,
    TaskCreate,
    TaskDetail,
    TaskLabelAdd,
    TaskRead,
    TaskUpdate,
)
from app.services import task_items as task_items_service
from app.services import tasks as tasks_service
from app.services.identity import IdentityContext

router = APIRouter(tags=["tasks"])


@router.post("/tasks")
def create_task(
    payload: TaskCreate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(tasks_service.tasks.create(db, identity, payload), TaskRead)


@router.get("/tasks")
def list_tasks(
    project_id: str | None = Query(default=None, alias="projectId"),
    parent_task_id: str | None = Query(default=None, alias="parentTaskId"),
    status: str | None = None,
    assigned_to: str | None = Query(default=None, alias="assignedTo"),
    search: str | None = None,
    order_by: str = Query(default="created_at", alias="orderBy"),
    order_dir: str = Query(default="desc", alias="orderDir", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    result = tasks_service.tasks.list(
        db,
        identity,
        project_id,
        parent_task_id,
        status,
        assigned_to,
        search,
        order_by,
        order_dir,
        page,
        limit,
    )
    return respond(result, TaskRead)


@router.get("/tasks/{task_id}")
def get_task(task_id: str, identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(tasks_service.tasks.get(db, identity, task_id), TaskDetail)


@router.put("/tasks/{task_id}")
def update_task(
    task_id: str,
    payload: TaskUpdate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(tasks_service.tasks.update(db, identity, task_id, payload), TaskRead)


@router.delete("/tasks/{task_id}")
def delete_task(task_id: str, identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(tasks_service.tasks.delete(db, identity, task_id))


@router.post("/tasks/{task_id}/checklist")
def add_checklist_item(
    task_id: str,
    payload: ChecklistItemCreate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_items_service.checklist.add(db, identity, task_id, payload), ChecklistItemRead)


@router.put("/tasks/{task_id}/checklist/{item_id}")
def update_checklist_item(
    task_id: str,
    item_id: str,
    payload: ChecklistItemUpdate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    result = task_items_service.checklist.update(db, identity, task_id, item_id, payload)
    return respond(result, ChecklistItemRead)


@router.delete("/tasks/{task_id}/checklist/{item_id}")
def delete_checklist_item(
    task_id: str,
    item_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_items_service.checklist.delete(db, identity, task_id, item_id))


@router.post("/tasks/{task_id}/labels")
def add_label(
    task_id: str,
    payload: TaskLabelAdd,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_items_service.labels.add(db, identity, task_id, payload), LabelRead)


@router.delete("/tasks/{task_id}/labels/{label_id}")
def remove_label(
    task_id: str,
    label_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_items_service.labels.remove(db, identity, task_id, label_id))


@router.post("/tasks/{task_id}/attachments")
def add_attachment(
    task_id: str,
    payload: AttachmentCreate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_items_service.attachments.add(db, identity, task_id, payload), AttachmentRead)


@router.delete("/tasks/{task_id}/attachments/{attachment_id}")
def delete_attachment(
    task_id: str,
    attachment_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_items_service.attachments.delete(db, identity, task_id, attachment_id))


@router.get("/tasks/{task_id}/comments")
def list_comments(task_id: str, identity: IdentityContext = Depends(require_identity), db: Session = Depends(get_db)):
    return respond(task_items_service.comments.list(db, identity, task_id), CommentRead)


@router.post("/tasks/{task_id}/comments")
def add_comment(
    task_id: str,
    payload: CommentCreate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_items_service.comments.add(db, identity, task_id, payload), CommentRead)


@router.put("/tasks/{task_id}/comments/{comment_id}")
def update_comment(
    task_id: str,
    comment_id: str,
    payload: CommentUpdate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    result = task_items_service.comments.update(db, identity, task_id, comment_id, payload)
    return respond(result, CommentRead)


@router.delete("/tasks/{task_id}/comments/{comment_id}")
def delete_comment(
    task_id: str,
    comment_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_items_service.comments.delete(db, identity, task_id, comment_id))
