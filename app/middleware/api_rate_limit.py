"""Global API rate limiting middleware.

Sliding-window limits kept in Redis, with a per-process in-memory fallback
when Redis is unreachable. Credential endpoints get a stricter limit.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, ClassVar

from starlette.requests import Request

from app.config import settings
from app.errors import error_envelope
from app.logging import get_logger

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = get_logger(__name__)

RATE_LIMIT_PREFIX = "api_rate:"
RATE_LIMIT_MESSAGE = "Quá nhiều yêu cầu, vui lòng thử lại sau 1 phút."


@dataclass(frozen=True)
class WindowDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_in: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_in),
        }


class MemoryWindowStore:
    """Timestamps per key, pruned on every hit. Not shared between workers.

    Keys whose newest hit has left the window are dropped, at most once per
    window.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._hits: dict[str, list[float]] = {}
        self._lock = Lock()
        self._clock = clock
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._hits)

    def _sweep(self, current: float, window: int) -> None:
        if current - self._last_sweep < window:
            return
        self._last_sweep = current
        stale = [key for key, stamps in self._hits.items() if not stamps or stamps[-1] <= current - window]
        for key in stale:
            del self._hits[key]

    def hit(self, key: str, limit: int, window: int) -> WindowDecision:
        current = self._clock()
        with self._lock:
            self._sweep(current, window)
            recent = [stamp for stamp in self._hits.pop(key, ()) if stamp > current - window]
            if len(recent) >= limit:
                self._hits[key] = recent
                reset_in = int(recent[0] + window - current) + 1
                return WindowDecision(False, limit, 0, reset_in)
            recent.append(current)
            self._hits[key] = recent
            return WindowDecision(True, limit, limit - len(recent), window)


class RedisWindowStore:
    """Sorted set per key scored by request time."""

    def __init__(self, client):
        self.client = client

    def hit(self, key: str, limit: int, window: int) -> WindowDecision:
        redis_key = f"{RATE_LIMIT_PREFIX}{key}"
        current = time.time()
        member = str(current)
        pipe = self.client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, current - window)
        pipe.zcard(redis_key)
        pipe.zadd(redis_key, {member: current})
        pipe.expire(redis_key, window + 1)
        _, seen, _, _ = pipe.execute()
        if seen < limit:
            return WindowDecision(True, limit, max(0, limit - seen - 1), window)
        self.client.zrem(redis_key, member)
        oldest = self.client.zrange(redis_key, 0, 0, withscores=True)
        reset_in = int(oldest[0][1] + window - current) + 1 if oldest else window
        return WindowDecision(False, limit, 0, reset_in)


def client_key(request: Request) -> str:
    """Client IP, honouring the first ``X-Forwarded-For`` hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class APIRateLimitMiddleware:
    """
    Rate limiting middleware for API endpoints.

    Rate limit headers are added to responses:
    - X-RateLimit-Limit: Maximum requests per window
    - X-RateLimit-Remaining: Requests remaining in current window
    - X-RateLimit-Reset: Seconds until window resets
    """

    EXEMPT_PATHS: ClassVar[set[str]] = {"/health", "/metrics", "/favicon.ico"}
    EXEMPT_PREFIXES: ClassVar[tuple[str, ...]] = ("/docs", "/openapi", "/redoc")
    STRICT_PATHS: ClassVar[set[str]] = {"/auth/login", "/auth/forgot-password"}

    def __init__(
        self,
        app: ASGIApp,
        limit: int | None = None,
        window_seconds: int | None = None,
        auth_limit: int | None = None,
        enabled: bool | None = None,
        redis_url: str | None = None,
        key_func: Callable[[Request], str] | None = None,
    ):
        self.app = app
        self.limit = settings.api_rate_limit if limit is None else limit
        self.window_seconds = settings.api_rate_window if window_seconds is None else window_seconds
        self.auth_limit = settings.auth_rate_limit if auth_limit is None else auth_limit
        self.enabled = settings.rate_limit_enabled if enabled is None else enabled
        self.redis_url = settings.redis_url if redis_url is None else redis_url
        self.key_func = key_func or client_key
        self.memory = MemoryWindowStore()
        self._redis_store: RedisWindowStore | None = None
        self._redis_checked = not self.redis_url

    def _redis(self) -> RedisWindowStore | None:
        if self._redis_checked:
            return self._redis_store
        self._redis_checked = True
        try:
            import redis

            client = redis.from_url(self.redis_url, decode_responses=True)
            client.ping()
        except Exception as exc:
            logger.warning("api_rate_limiter_redis_unavailable error=%s", exc)
            return None
        logger.info("api_rate_limiter_redis_connected")
        self._redis_store = RedisWindowStore(client)
        return self._redis_store

    def is_exempt(self, path: str) -> bool:
        return path in self.EXEMPT_PATHS or path.startswith(self.EXEMPT_PREFIXES)

    def check(self, request: Request) -> WindowDecision:
        key = self.key_func(request)
        limit = self.limit
        if (request.url.path.rstrip("/") or "/") in self.STRICT_PATHS:
            key, limit = f"auth:{key}", self.auth_limit
        store = self._redis()
        if store is not None:
            try:
                return store.hit(key, limit, self.window_seconds)
            except Exception as exc:
                logger.warning("api_rate_limit_redis_error key=%s error=%s", key, exc)
                return WindowDecision(True, limit, limit - 1, self.window_seconds)
        return self.memory.hit(key, limit, self.window_seconds)

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope["type"] != "http" or not self.enabled:
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        if self.is_exempt(request.url.path):
            await self.app(scope, receive, send)
            return

        decision = self.check(request)
        if not decision.allowed:
            logger.warning("api_rate_limited path=%s reset_in=%s", request.url.path, decision.reset_in)
            response = error_envelope(
                429,
                RATE_LIMIT_MESSAGE,
                headers={**decision.headers(), "Retry-After": str(decision.reset_in)},
            )
            await response(scope, receive, send)
            return

        extra = [(name.encode(), value.encode()) for name, value in decision.headers().items()]

        async def send_with_headers(message: Message):
            if message["type"] == "http.response.start":
                message = {**message, "headers": [*message.get("headers", []), *extra]}
            await send(message)

        await self.app(scope, receive, send_with_headers)
