"""Uniform ``{status, data | message}`` result returned by service operations."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import InternalError, ServiceError

logger = logging.getLogger(__name__)


@dataclass
class ServiceResult:
    status: int
    data: Any = None
    message: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None, status: int = 200, message: str | None = None, **meta: Any) -> ServiceResult:
        return cls(status=status, data=data, message=message, meta=meta)

    @classmethod
    def created(cls, data: Any = None, message: str | None = None) -> ServiceResult:
        return cls(status=201, data=data, message=message)

    @classmethod
    def fail(cls, status: int, message: str) -> ServiceResult:
        return cls(status=status, message=message)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    def to_envelope(self) -> dict[str, Any]:
        envelope: dict[str, Any] = {"status": self.status}
        if self.message is not None:
            envelope["message"] = self.message
        if self.is_success and self.data is not None:
            envelope["data"] = self.data
        envelope.update(self.meta)
        return envelope


def _find_session(args: tuple, kwargs: dict) -> Session | None:
    db = kwargs.get("db")
    if isinstance(db, Session):
        return db
    for arg in args:
        if isinstance(arg, Session):
            return arg
    return None


def _internal_failure() -> ServiceResult:
    error = InternalError()
    return ServiceResult.fail(error.status_code, error.detail)


def service_boundary(func: Callable[..., ServiceResult]) -> Callable[..., ServiceResult]:
    """Turn raised service errors into a ``ServiceResult``.

    ``ServiceError`` keeps its status and detail. Database and unexpected
    errors roll back the session and surface as a generic 500.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> ServiceResult:
        try:
            return func(*args, **kwargs)
        except ServiceError as exc:
            db = _find_session(args, kwargs)
            if db is not None:
                db.rollback()
            return ServiceResult.fail(exc.status_code, exc.detail)
        except SQLAlchemyError:
            db = _find_session(args, kwargs)
            if db is not None:
                db.rollback()
            logger.exception("service_database_error operation=%s", func.__qualname__)
            return _internal_failure()
        except Exception:
            db = _find_session(args, kwargs)
            if db is not None:
                db.rollback()
            logger.exception("service_unexpected_error operation=%s", func.__qualname__)
            return _internal_failure()

    return wrapper
