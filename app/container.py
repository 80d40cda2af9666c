"""Dependency injection container.

This module provides a centralized container for the process-wide
collaborators: the event bus and its handlers, the notification router,
the audit logger, the reference-data cache and the role-policy toggles.

Usage:
    from app.container import container

    # In services
    container.event_bus().publish(db, event)

    # In tests
    with container.notification_router.override(FakeRouter()):
        tasks.update(db, identity, task_id, payload)
"""

from __future__ import annotations

from dependency_injector import containers, providers  # type: ignore[import-not-found]

from app.config import settings
from app.services.audit import audit_logger as _audit_logger
from app.services.cache import TTLCache
from app.services.events import EventBus
from app.services.events.handlers import AuditHandler, NotificationHandler
from app.services.notifications import NotificationRouter
from app.services.role_policy import PolicyToggles


class Container(containers.DeclarativeContainer):
    """Application dependency injection container.

    Provides:
    - Event bus with the notification and audit handlers
    - Cache and policy toggles
    """

    # -------------------------------------------------------------------------
    # Cross-cutting collaborators
    # -------------------------------------------------------------------------

    policy_toggles = providers.Singleton(PolicyToggles.from_settings)

    cache = providers.Singleton(
        TTLCache,
        default_ttl=settings.cache_default_ttl_seconds,
        sweep_interval=settings.cache_sweep_interval_seconds,
        enabled=settings.cache_enabled,
    )

    notification_router = providers.Singleton(NotificationRouter)
    audit_logger = providers.Object(_audit_logger)

    notification_handler = providers.Singleton(NotificationHandler, router=notification_router)
    audit_handler = providers.Singleton(AuditHandler, audit_logger=audit_logger)

    event_bus = providers.Singleton(
        EventBus,
        handlers=providers.List(notification_handler, audit_handler),
    )


# Global container instance
container = Container()
