"""Role policy: who may do what to projects and tasks.

Role names are normalized to a ``RoleTag`` before every decision, so any
accepted spelling ("Trưởng phòng", "manager", " TP ") behaves the same.
``authorize`` never raises; callers get a ``PolicyDecision`` and decide how
to surface a denial.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, replace

from app.config import settings
from app.services.workflow import (
    DIRECTOR_PROJECT_STATUSES,
    STAFF_TASK_STATUSES,
    normalize_status,
)


class RoleTag(enum.Enum):
    admin = "admin"
    director = "director"
    pmo = "pmo"
    leader = "leader"
    staff = "staff"


ROLE_SYNONYMS: dict[RoleTag, tuple[str, ...]] = {
    RoleTag.admin: ("admin", "system admin", "admin hệ thống", "administrator"),
    RoleTag.director: ("director", "giám đốc"),
    RoleTag.pmo: ("pmo", "project management office"),
    RoleTag.leader: ("leader", "manager", "trưởng phòng", "tp"),
    RoleTag.staff: ("staff", "nhân viên", "user"),
}

_SYNONYM_LOOKUP: dict[str, RoleTag] = {
    synonym: tag for tag, synonyms in ROLE_SYNONYMS.items() for synonym in synonyms
}

ELEVATED_REPORT_ROLES = frozenset({RoleTag.admin, RoleTag.pmo, RoleTag.leader})

STAFF_TASK_FIELDS = frozenset({"status", "progress", "description", "begin_date", "due_date"})

# Request keys that are not task fields.
_NON_FIELD_KEYS = frozenset({"reason"})


class Action(enum.Enum):
    project_create = "project_create"
    project_view = "project_view"
    project_update = "project_update"
    project_delete = "project_delete"
    task_create = "task_create"
    task_view = "task_view"
    task_update = "task_update"
    task_delete = "task_delete"
    task_report_create = "task_report_create"
    task_report_manage = "task_report_manage"
    escalate_to_leader = "escalate_to_leader"
    escalate_to_pmo = "escalate_to_pmo"
    account_manage = "account_manage"
    department_manage = "department_manage"
    system_logs_view_all = "system_logs_view_all"
    dashboard_view = "dashboard_view"


def normalize_role(name: str | RoleTag | None) -> RoleTag | None:
    if isinstance(name, RoleTag):
        return name
    if not name:
        return None
    key = " ".join(str(name).strip().lower().split())
    return _SYNONYM_LOOKUP.get(key)


@dataclass(frozen=True)
class PolicyToggles:
    staff_self_create_tasks: bool = False
    admin_can_view_projects: bool = True

    @classmethod
    def from_settings(cls) -> PolicyToggles:
        return cls(
            staff_self_create_tasks=settings.policy_staff_self_create_tasks,
            admin_can_view_projects=settings.policy_admin_can_view_projects,
        )


@dataclass(frozen=True)
class PolicyContext:
    actor_department_id: uuid.UUID | None = None
    target_department_id: uuid.UUID | None = None
    parent_task_id: uuid.UUID | None = None
    assignee_department_ids: tuple[uuid.UUID | None, ...] = ()
    is_assignee: bool = False
    is_owner: bool = False
    is_self_assignment: bool = False
    fields: frozenset[str] = field(default_factory=frozenset)
    status: str | None = None
    role_name: str | None = None


@dataclass(frozen=True)
class PolicyDecision:
    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> PolicyDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> PolicyDecision:
        return cls(allowed=False, reason=reason)

    def __bool__(self) -> bool:
        return self.allowed


def _label(role: RoleTag | None, ctx: PolicyContext) -> str:
    if ctx.role_name:
        return ctx.role_name
    return role.value if role else "unknown"


def _same_department(ctx: PolicyContext) -> bool:
    return ctx.actor_department_id is not None and ctx.actor_department_id == ctx.target_department_id


def _project_create(role, ctx, toggles):
    if role == RoleTag.pmo:
        return PolicyDecision.allow()
    return PolicyDecision.deny(
        f"Access Denied: Role '{_label(role, ctx)}' cannot create projects. Only PMO allowed."
    )


def _project_view(role, ctx, toggles):
    if role in (RoleTag.pmo, RoleTag.director):
        return PolicyDecision.allow()
    if role == RoleTag.admin:
        if toggles.admin_can_view_projects:
            return PolicyDecision.allow()
        return PolicyDecision.deny("Access Denied: Admin cannot view projects.")
    if role in (RoleTag.leader, RoleTag.staff):
        if ctx.target_department_id is None or _same_department(ctx):
            return PolicyDecision.allow()
        return PolicyDecision.deny("Access Denied: Project belongs to another department.")
    return PolicyDecision.deny(f"Access Denied: Role '{_label(role, ctx)}' cannot view projects.")


def _project_update(role, ctx, toggles):
    if role == RoleTag.pmo:
        return PolicyDecision.allow()
    if role == RoleTag.director:
        fields = set(ctx.fields) - _NON_FIELD_KEYS
        status = normalize_status(ctx.status) if ctx.status else None
        if fields == {"status"} and status in DIRECTOR_PROJECT_STATUSES:
            return PolicyDecision.allow()
        return PolicyDecision.deny(
            "Access Denied: Director can only change project status to approved, rejected or closed."
        )
    return PolicyDecision.deny(f"Access Denied: Role '{_label(role, ctx)}' cannot update projects.")


def _project_delete(role, ctx, toggles):
    if role == RoleTag.pmo:
        return PolicyDecision.allow()
    return PolicyDecision.deny(
        f"Access Denied: Role '{_label(role, ctx)}' cannot delete projects. Only PMO allowed."
    )


def _task_create(role, ctx, toggles):
    if role == RoleTag.pmo:
        return PolicyDecision.allow()
    if role == RoleTag.leader:
        if ctx.parent_task_id is None:
            return PolicyDecision.deny("Leader chỉ được tạo công việc con (cần chọn công việc cha).")
        if not _same_department(ctx):
            return PolicyDecision.deny("Leader chỉ được tạo công việc trong dự án thuộc phòng ban của mình.")
        if any(dept != ctx.actor_department_id for dept in ctx.assignee_department_ids):
            return PolicyDecision.deny("Chỉ được giao việc cho nhân viên thuộc phòng ban của mình.")
        return PolicyDecision.allow()
    if role == RoleTag.staff:
        if toggles.staff_self_create_tasks and ctx.is_self_assignment and ctx.parent_task_id is None:
            return PolicyDecision.allow()
        return PolicyDecision.deny("Access Denied: Staff cannot create tasks.")
    return PolicyDecision.deny(f"Access Denied: Role '{_label(role, ctx)}' cannot create tasks.")


def _task_view(role, ctx, toggles):
    if role in (RoleTag.pmo, RoleTag.director, RoleTag.admin):
        return PolicyDecision.allow()
    if role == RoleTag.leader:
        if _same_department(ctx) or ctx.is_assignee:
            return PolicyDecision.allow()
        return PolicyDecision.deny("Access Denied: Task belongs to another department.")
    if role == RoleTag.staff:
        if ctx.is_assignee:
            return PolicyDecision.allow()
        return PolicyDecision.deny("Access Denied: You are not assigned to this task.")
    return PolicyDecision.deny(f"Access Denied: Role '{_label(role, ctx)}' cannot view tasks.")


def _task_update(role, ctx, toggles):
    if role == RoleTag.pmo:
        return PolicyDecision.allow()
    if role == RoleTag.director:
        return PolicyDecision.deny("Access Denied: Director has view-only access to tasks.")
    if role == RoleTag.leader:
        if _same_department(ctx):
            return PolicyDecision.allow()
        return PolicyDecision.deny("Access Denied: Leader can only update tasks of their own department.")
    if role == RoleTag.staff:
        if not ctx.is_assignee:
            return PolicyDecision.deny("Access Denied: You are not assigned to this task.")
        blocked = sorted(set(ctx.fields) - STAFF_TASK_FIELDS - _NON_FIELD_KEYS)
        if blocked:
            return PolicyDecision.deny(f"Access Denied: Staff cannot update field(s): {', '.join(blocked)}")
        if "status" in ctx.fields and normalize_status(ctx.status) not in STAFF_TASK_STATUSES:
            return PolicyDecision.deny(f"Access Denied: Staff cannot set status '{ctx.status}'")
        return PolicyDecision.allow()
    return PolicyDecision.deny(f"Access Denied: Role '{_label(role, ctx)}' cannot update tasks.")


def _task_delete(role, ctx, toggles):
    if role == RoleTag.pmo:
        return PolicyDecision.allow()
    if role == RoleTag.staff:
        return PolicyDecision.deny("Access Denied: Staff cannot delete tasks.")
    if role == RoleTag.leader:
        if _same_department(ctx):
            return PolicyDecision.allow()
        return PolicyDecision.deny("Access Denied: Leader can only delete tasks of their own department.")
    return PolicyDecision.deny(f"Access Denied: Role '{_label(role, ctx)}' cannot delete tasks.")


def _task_report_create(role, ctx, toggles):
    if ctx.is_assignee or role in ELEVATED_REPORT_ROLES:
        return PolicyDecision.allow()
    return PolicyDecision.deny("Bạn không có quyền báo cáo cho công việc này")


def _task_report_manage(role, ctx, toggles):
    if ctx.is_owner or role in ELEVATED_REPORT_ROLES:
        return PolicyDecision.allow()
    return PolicyDecision.deny("Bạn không có quyền chỉnh sửa báo cáo này")


def _escalate_to_leader(role, ctx, toggles):
    if role == RoleTag.staff:
        return PolicyDecision.allow()
    return PolicyDecision.deny("Chỉ Staff mới có thể escalate lên Leader")


def _escalate_to_pmo(role, ctx, toggles):
    if role == RoleTag.leader:
        return PolicyDecision.allow()
    return PolicyDecision.deny("Chỉ Leader mới có thể escalate lên PMO")


def _any_known_role(role, ctx, toggles):
    return PolicyDecision.allow()


def _admin_only(role, ctx, toggles):
    if role == RoleTag.admin:
        return PolicyDecision.allow()
    return PolicyDecision.deny("Access Denied: Admin only.")


_RULES = {
    Action.project_create: _project_create,
    Action.project_view: _project_view,
    Action.project_update: _project_update,
    Action.project_delete: _project_delete,
    Action.task_create: _task_create,
    Action.task_view: _task_view,
    Action.task_update: _task_update,
    Action.task_delete: _task_delete,
    Action.task_report_create: _task_report_create,
    Action.task_report_manage: _task_report_manage,
    Action.escalate_to_leader: _escalate_to_leader,
    Action.escalate_to_pmo: _escalate_to_pmo,
    Action.account_manage: _admin_only,
    Action.department_manage: _admin_only,
    Action.system_logs_view_all: _admin_only,
    Action.dashboard_view: _any_known_role,
}


def authorize(
    role: RoleTag | str | None,
    action: Action,
    context: PolicyContext | None = None,
    toggles: PolicyToggles | None = None,
) -> PolicyDecision:
    ctx = context or PolicyContext()
    if isinstance(role, str) and ctx.role_name is None:
        ctx = replace(ctx, role_name=role)
    tag = normalize_role(role)
    if tag is None:
        return PolicyDecision.deny(f"Access Denied: Unknown role '{_label(None, ctx)}'.")
    return _RULES[action](tag, ctx, toggles or PolicyToggles.from_settings())


@dataclass(frozen=True)
class Scope:
    """Row filter for list queries."""

    everything: bool = False
    department_id: uuid.UUID | None = None
    member_id: uuid.UUID | None = None

    @property
    def is_empty(self) -> bool:
        return not self.everything and self.department_id is None and self.member_id is None


def project_scope(
    role: RoleTag | None,
    department_id: uuid.UUID | None,
    toggles: PolicyToggles | None = None,
) -> Scope:
    toggles = toggles or PolicyToggles.from_settings()
    if role in (RoleTag.pmo, RoleTag.director):
        return Scope(everything=True)
    if role == RoleTag.admin:
        return Scope(everything=toggles.admin_can_view_projects)
    if role in (RoleTag.leader, RoleTag.staff):
        return Scope(department_id=department_id)
    return Scope()


def task_scope(role: RoleTag | None, department_id: uuid.UUID | None, member_id: uuid.UUID | None) -> Scope:
    if role in (RoleTag.pmo, RoleTag.director, RoleTag.admin):
        return Scope(everything=True)
    if role == RoleTag.leader:
        return Scope(department_id=department_id)
    if role == RoleTag.staff:
        return Scope(member_id=member_id)
    return Scope()
