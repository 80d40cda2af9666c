from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_identity
from app.api.envelope import respond
from app.schemas.task_reports import TaskReportCreate, TaskReportRead, TaskReportUpdate
from app.services import task_reports as task_reports_service
from app.services.identity import IdentityContext

router = APIRouter(prefix="/task-reports", tags=["task-reports"])


@router.get("")
def list_task_reports(
    task_id: str | None = Query(default=None, alias="taskId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_reports_service.task_reports.list(db, identity, task_id, page, limit), TaskReportRead)


@router.post("")
def create_task_report(
    payload: TaskReportCreate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_reports_service.task_reports.create(db, identity, payload), TaskReportRead)


@router.put("/{report_id}")
def update_task_report(
    report_id: str,
    payload: TaskReportUpdate,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_reports_service.task_reports.update(db, identity, report_id, payload), TaskReportRead)


@router.delete("/{report_id}")
def delete_task_report(
    report_id: str,
    identity: IdentityContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    return respond(task_reports_service.task_reports.delete(db, identity, report_id))
