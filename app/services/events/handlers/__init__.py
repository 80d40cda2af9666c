"""Event handlers module.

Provides handlers for processing events:
- NotificationHandler: Routes workflow events to in-app notifications
- AuditHandler: Writes the system log entry for each logged action
"""

from app.services.events.handlers.audit import AuditHandler
from app.services.events.handlers.notification import NotificationHandler

__all__ = ["AuditHandler", "NotificationHandler"]
