"""In-process event bus.

Services publish an event only after their own transaction has committed.
Each handler runs in isolation: its writes are committed on their own and a
failure is rolled back and logged without touching the primary change or the
other handlers.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy.orm import Session

from app.metrics import EVENT_HANDLER_FAILURES
from app.services.events.types import Event, EventType

logger = logging.getLogger(__name__)


class EventHandler(Protocol):
    def handle(self, db: Session, event: Event) -> None: ...


class EventBus:
    def __init__(self, handlers: list[EventHandler] | None = None):
        self._handlers: list[EventHandler] = list(handlers or [])

    @property
    def handlers(self) -> list[EventHandler]:
        return list(self._handlers)

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def publish(self, db: Session, event: Event) -> None:
        for handler in self._handlers:
            name = type(handler).__name__
            try:
                handler.handle(db, event)
                db.commit()
            except Exception:
                db.rollback()
                EVENT_HANDLER_FAILURES.labels(handler=name).inc()
                logger.exception(
                    "event_handler_failed handler=%s event=%s event_id=%s",
                    name,
                    event.event_type.value,
                    event.event_id,
                )


def get_event_bus() -> EventBus:
    from app.container import container

    return container.event_bus()


def emit_event(
    db: Session,
    event_type: EventType,
    payload: dict[str, Any],
    *,
    actor_account_id=None,
    task_id=None,
    project_id=None,
) -> Event:
    event = Event(
        event_type=event_type,
        payload=payload,
        actor_account_id=actor_account_id,
        task_id=task_id,
        project_id=project_id,
    )
    get_event_bus().publish(db, event)
    return event


__all__ = ["Event", "EventBus", "EventType", "emit_event", "get_event_bus"]
