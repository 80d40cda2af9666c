"""Headline counts for the dashboard, cached briefly.

Every authenticated role gets the global counters. ``report_type="reports"``
adds the status chart and per-department performance; Leaders also get the
workload of their own department.
"""

from datetime import timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.models.auth import Account
from app.models.organization import Department, Member
from app.models.projects import Project, Task, TaskMember, TaskStatus
from app.services.cache import (
    DASHBOARD_STATS_KEY,
    DASHBOARD_STATS_TTL_SECONDS,
    build_key,
    get_cache,
)
from app.services.common import as_utc, now
from app.services.identity import IdentityContext, ensure_allowed
from app.services.result import ServiceResult, service_boundary
from app.services.role_policy import Action, RoleTag

REPORTS_TYPE = "reports"

ACTIVE_STATUSES = {TaskStatus.in_progress.value}
FINISHED_STATUSES = {TaskStatus.completed.value, TaskStatus.done.value}

STATUS_COLORS = {
    TaskStatus.completed.value: "hsl(142, 71%, 45%)",
    TaskStatus.in_progress.value: "hsl(217, 91%, 50%)",
}
DEFAULT_STATUS_COLOR = "hsl(0, 0%, 50%)"


def _group_counts(db: Session, column, model) -> dict[str, int]:
    rows = db.query(column, func.count()).filter(model.is_deleted.is_(False)).group_by(column).all()
    return {str(key): count for key, count in rows}


def _compute_stats(db: Session) -> dict:
    online_since = now() - timedelta(minutes=settings.online_window_minutes)
    accounts = db.query(Account).filter(Account.is_deleted.is_(False))
    return {
        "totalUsers": accounts.count(),
        "activeUsers": accounts.filter(Account.last_seen_at >= online_since).count(),
        "departmentCount": db.query(Department).filter(Department.is_deleted.is_(False)).count(),
        "totalProjects": db.query(Project).filter(Project.is_deleted.is_(False)).count(),
        "totalTasks": db.query(Task).filter(Task.is_deleted.is_(False)).count(),
        "projectsByStatus": _group_counts(db, Project.status, Project),
        "tasksByStatus": _group_counts(db, Task.status, Task),
        "tasksByPriority": _group_counts(db, Task.priority, Task),
    }


def _assigned_tasks(db: Session, department_id=None):
    """(member, task) pairs for live tasks, optionally limited to one department."""
    query = (
        db.query(Member, Task)
        .join(TaskMember, TaskMember.member_id == Member.id)
        .join(Task, Task.id == TaskMember.task_id)
        .filter(Member.is_deleted.is_(False), Task.is_deleted.is_(False))
    )
    if department_id is not None:
        query = query.filter(Member.department_id == department_id)
    return query.all()


def _is_overdue(task: Task, current) -> bool:
    due = as_utc(task.due_date)
    return due is not None and due < current and task.status not in FINISHED_STATUSES


def _compute_reports(db: Session, tasks_by_status: dict[str, int]) -> dict:
    current = now()
    departments = (
        db.query(Department).filter(Department.is_deleted.is_(False)).order_by(Department.name).all()
    )
    performance = {dept.id: {"name": dept.name, "total": 0, "completed": 0, "overdue": 0} for dept in departments}
    for member, task in _assigned_tasks(db):
        row = performance.get(member.department_id)
        if row is None:
            continue
        row["total"] += 1
        if task.status in FINISHED_STATUSES:
            row["completed"] += 1
        if _is_overdue(task, current):
            row["overdue"] += 1
    return {
        "statusData": [
            {"name": status, "value": count, "color": STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)}
            for status, count in tasks_by_status.items()
        ],
        "departmentData": list(performance.values()),
    }


def _compute_workload(db: Session, department_id) -> dict:
    members = (
        db.query(Member)
        .filter(Member.department_id == department_id, Member.is_deleted.is_(False))
        .order_by(Member.full_name)
        .all()
    )
    workload = {
        member.id: {"id": str(member.id), "name": member.full_name, "activeTasks": 0, "completedTasks": 0}
        for member in members
    }
    for member, task in _assigned_tasks(db, department_id):
        row = workload.get(member.id)
        if row is None:
            continue
        if task.status in ACTIVE_STATUSES:
            row["activeTasks"] += 1
        elif task.status in FINISHED_STATUSES:
            row["completedTasks"] += 1
    return {"workload": list(workload.values())}


class Dashboard:
    @staticmethod
    @service_boundary
    def stats(db: Session, identity: IdentityContext, report_type: str | None = None) -> ServiceResult:
        ensure_allowed(identity, Action.dashboard_view)
        cache = get_cache()
        data = dict(
            cache.get_or_set(DASHBOARD_STATS_KEY, lambda: _compute_stats(db), ttl=DASHBOARD_STATS_TTL_SECONDS)
        )
        if report_type == REPORTS_TYPE:
            data.update(
                cache.get_or_set(
                    build_key(DASHBOARD_STATS_KEY, {"type": REPORTS_TYPE}),
                    lambda: _compute_reports(db, data["tasksByStatus"]),
                    ttl=DASHBOARD_STATS_TTL_SECONDS,
                )
            )
        if identity.role == RoleTag.leader and identity.department_id is not None:
            data["members"] = cache.get_or_set(
                build_key(DASHBOARD_STATS_KEY, {"department": str(identity.department_id)}),
                lambda: _compute_workload(db, identity.department_id),
                ttl=DASHBOARD_STATS_TTL_SECONDS,
            )
        return ServiceResult.ok(data)


dashboard = Dashboard()
