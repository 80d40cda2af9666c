from fastapi import Request

from app.db import get_db
from app.services.auth_dependencies import require_identity, require_roles


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


__all__ = [
    "client_ip",
    "get_db",
    "require_identity",
    "require_roles",
]
