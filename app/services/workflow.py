"""Task and project status rules.

Statuses are stored as plain strings. The values below are the ones the
workflow understands; anything else passes through unchecked.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from app.errors import ValidationError
from app.models.projects import ProjectStatus, TaskStatus
from app.services.common import now

CANONICAL_TASK_STATUSES = frozenset(status.value for status in TaskStatus)
CANONICAL_PROJECT_STATUSES = frozenset(status.value for status in ProjectStatus)

_STATUS_ALIASES = {
    "waiting-approval": TaskStatus.waiting_approval.value,
    "waiting approval": TaskStatus.waiting_approval.value,
    "review-request": TaskStatus.review_request.value,
    "review": TaskStatus.review_request.value,
    "in-progress": TaskStatus.in_progress.value,
    "in progress": TaskStatus.in_progress.value,
    "doing": TaskStatus.in_progress.value,
    "complete": TaskStatus.completed.value,
    "todo": TaskStatus.pending.value,
}

STATUS_LABELS: dict[str, str] = {
    TaskStatus.pending.value: "Chờ xử lý",
    TaskStatus.in_progress.value: "Đang thực hiện",
    TaskStatus.review_request.value: "Yêu cầu duyệt",
    TaskStatus.waiting_approval.value: "Chờ duyệt",
    TaskStatus.approved.value: "Đã duyệt",
    TaskStatus.rejected.value: "Từ chối",
    TaskStatus.returned.value: "Trả lại",
    TaskStatus.completed.value: "Hoàn thành",
    TaskStatus.done.value: "Hoàn tất",
    TaskStatus.deleted.value: "Đã xóa",
    ProjectStatus.active.value: "Đang hoạt động",
    ProjectStatus.closed.value: "Đã đóng",
}

COMPLETION_STATUSES = frozenset({TaskStatus.done.value, TaskStatus.completed.value})
REVIEW_STATUSES = frozenset({TaskStatus.review_request.value, TaskStatus.waiting_approval.value})
STAFF_TASK_STATUSES = frozenset(
    {
        TaskStatus.in_progress.value,
        TaskStatus.review_request.value,
        TaskStatus.waiting_approval.value,
        TaskStatus.done.value,
        TaskStatus.completed.value,
    }
)
DIRECTOR_PROJECT_STATUSES = frozenset(
    {ProjectStatus.approved.value, ProjectStatus.rejected.value, ProjectStatus.closed.value}
)

_TASK_TRANSITIONS: dict[str, frozenset[str]] = {
    TaskStatus.pending.value: frozenset({TaskStatus.in_progress.value}),
    TaskStatus.in_progress.value: REVIEW_STATUSES | COMPLETION_STATUSES,
    TaskStatus.review_request.value: frozenset(
        {
            TaskStatus.approved.value,
            TaskStatus.rejected.value,
            TaskStatus.returned.value,
            TaskStatus.in_progress.value,
        }
    ),
    TaskStatus.approved.value: COMPLETION_STATUSES,
    TaskStatus.rejected.value: frozenset({TaskStatus.in_progress.value}),
    TaskStatus.returned.value: frozenset({TaskStatus.in_progress.value}),
    TaskStatus.completed.value: frozenset(),
    TaskStatus.done.value: frozenset(),
    TaskStatus.deleted.value: frozenset(),
}
_TASK_TRANSITIONS[TaskStatus.waiting_approval.value] = _TASK_TRANSITIONS[TaskStatus.review_request.value]


def normalize_status(value: str | None) -> str | None:
    if value is None:
        return None
    raw = " ".join(str(value).strip().lower().split())
    if not raw:
        return None
    if raw in _STATUS_ALIASES:
        return _STATUS_ALIASES[raw]
    underscored = re.sub(r"[\s\-]+", "_", raw)
    if underscored in CANONICAL_TASK_STATUSES or underscored in CANONICAL_PROJECT_STATUSES:
        return underscored
    return raw


def is_canonical(status: str | None) -> bool:
    return status in CANONICAL_TASK_STATUSES


def status_label(status: str | None) -> str:
    if not status:
        return ""
    return STATUS_LABELS.get(status, status)


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    reason: str | None = None


def validate_transition(current: str | None, target: str | None) -> TransitionCheck:
    current = normalize_status(current) or TaskStatus.pending.value
    target = normalize_status(target)
    if not target:
        return TransitionCheck(allowed=False, reason="Trạng thái không hợp lệ")
    if target == current:
        return TransitionCheck(allowed=True)
    if target == TaskStatus.deleted.value:
        return TransitionCheck(allowed=False, reason="Dùng chức năng xóa để xóa công việc")
    if not is_canonical(current) or not is_canonical(target):
        return TransitionCheck(allowed=True)
    if target in _TASK_TRANSITIONS.get(current, frozenset()):
        return TransitionCheck(allowed=True)
    return TransitionCheck(
        allowed=False,
        reason=f"Không thể chuyển trạng thái từ '{status_label(current)}' sang '{status_label(target)}'",
    )


@dataclass(frozen=True)
class StatusChange:
    previous: str | None
    current: str

    @property
    def completed(self) -> bool:
        return self.current in COMPLETION_STATUSES

    @property
    def label(self) -> str:
        return f"{status_label(self.previous)} → {status_label(self.current)}"


def apply_status(task, new_status: str, at: datetime | None = None) -> StatusChange | None:
    """Write a validated status onto ``task``.

    Returns ``None`` when the value does not change.
    """
    target = normalize_status(new_status)
    previous = normalize_status(task.status)
    if target is None or target == previous:
        return None
    task.status = target
    if target in COMPLETION_STATUSES:
        task.completed_at = at or now()
    elif previous in COMPLETION_STATUSES:
        task.completed_at = None
    return StatusChange(previous=previous, current=target)


def parse_progress(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Tiến độ phải là số nguyên từ 0 đến 100")
    try:
        progress = int(str(value).strip().rstrip("%"))
    except (TypeError, ValueError) as exc:
        raise ValidationError("Tiến độ phải là số nguyên từ 0 đến 100") from exc
    if progress < 0 or progress > 100:
        raise ValidationError("Tiến độ phải là số nguyên từ 0 đến 100")
    return progress


def apply_project_status(project, new_status: str) -> StatusChange | None:
    target = normalize_status(new_status)
    previous = normalize_status(project.status)
    if target is None or target == previous:
        return None
    project.status = target
    return StatusChange(previous=previous, current=target)
