"""Error taxonomy shared by services and the HTTP layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Lỗi hệ thống, vui lòng thử lại sau"


# Not frozen: context managers reassign __traceback__ while an error propagates.
@dataclass(eq=False)
class ServiceError(Exception):
    code: str
    detail: str
    status_code: int = 500

    def __str__(self) -> str:
        return self.detail


class ValidationError(ServiceError):
    def __init__(self, detail: str, code: str = "validation_error"):
        super().__init__(code=code, detail=detail, status_code=400)


class NotFoundError(ServiceError):
    def __init__(self, detail: str, code: str = "not_found"):
        super().__init__(code=code, detail=detail, status_code=404)


class PermissionDeniedError(ServiceError):
    def __init__(self, detail: str, code: str = "permission_denied"):
        super().__init__(code=code, detail=detail, status_code=403)


class AuthenticationError(ServiceError):
    def __init__(self, detail: str, code: str = "unauthorized"):
        super().__init__(code=code, detail=detail, status_code=401)


class ConflictError(ServiceError):
    def __init__(self, detail: str, code: str = "conflict"):
        super().__init__(code=code, detail=detail, status_code=400)


class LockedError(ServiceError):
    def __init__(self, detail: str, code: str = "account_locked"):
        super().__init__(code=code, detail=detail, status_code=423)


class InternalError(ServiceError):
    def __init__(self, detail: str = GENERIC_ERROR_MESSAGE, code: str = "internal_error"):
        super().__init__(code=code, detail=detail, status_code=500)


def error_envelope(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": status_code, "message": message},
        headers=headers,
    )


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Dữ liệu không hợp lệ"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid")
    return f"{location}: {message}" if location else message


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error_handler(request: Request, exc: ServiceError):
        return error_envelope(exc.status_code, exc.detail)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return error_envelope(exc.status_code, detail, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):
        return error_envelope(400, _first_validation_message(exc))

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("unhandled_exception method=%s path=%s", request.method, request.url.path)
        return error_envelope(500, GENERIC_ERROR_MESSAGE)
