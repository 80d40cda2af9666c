from app.models.audit import SystemLog  # noqa: F401
from app.models.auth import Account, AccountStatus  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.organization import Department, Member, Role  # noqa: F401
from app.models.projects import (  # noqa: F401
    Label,
    Project,
    ProjectStatus,
    Task,
    TaskAttachment,
    TaskChecklistItem,
    TaskComment,
    TaskLabel,
    TaskMember,
    TaskMemberRole,
    TaskPriority,
    TaskReport,
    TaskStatus,
)
