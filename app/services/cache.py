"""In-memory TTL cache for read-mostly reference data.

Per-process only. Writers invalidate by exact key or by ``prefix*`` pattern;
a daemon thread purges expired entries on a fixed interval.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from app.metrics import CACHE_LOOKUPS

logger = logging.getLogger(__name__)

DEPARTMENTS_KEY = "departments:list"
LABELS_KEY = "labels:list"
DASHBOARD_STATS_KEY = "dashboard:stats"
DASHBOARD_STATS_TTL_SECONDS = 30

_MISSING = object()


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    def __init__(self, default_ttl: int = 300, sweep_interval: int = 60, enabled: bool = True):
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self.enabled = enabled
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    @staticmethod
    def _now() -> float:
        return time.monotonic()

    def get(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        return default if value is _MISSING else value

    def _lookup(self, key: str) -> Any:
        if not self.enabled:
            return _MISSING
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at <= self._now():
                if entry is not None:
                    self._entries.pop(key, None)
                self._misses += 1
                CACHE_LOOKUPS.labels(result="miss").inc()
                return _MISSING
            self._hits += 1
            CACHE_LOOKUPS.labels(result="hit").inc()
            return entry.value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if not self.enabled:
            return
        ttl_seconds = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = _CacheEntry(value=value, expires_at=self._now() + ttl_seconds)

    def get_or_set(self, key: str, loader: Callable[[], Any], ttl: int | None = None) -> Any:
        value = self._lookup(key)
        if value is not _MISSING:
            return value
        value = loader()
        self.set(key, value, ttl)
        return value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate(self, pattern: str) -> int:
        """Drop ``pattern`` exactly, or every key starting with it when it ends in ``*``."""
        with self._lock:
            if pattern.endswith("*"):
                prefix = pattern[:-1]
                keys = [key for key in self._entries if key.startswith(prefix)]
            else:
                keys = [pattern] if pattern in self._entries else []
            for key in keys:
                self._entries.pop(key, None)
        if keys:
            logger.debug("cache_invalidated pattern=%s count=%s", pattern, len(keys))
        return len(keys)

    def purge_expired(self) -> int:
        now = self._now()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                self._entries.pop(key, None)
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 4) if total else 0.0,
            }

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                purged = self.purge_expired()
                if purged:
                    logger.debug("cache_sweep purged=%s", purged)
            except Exception:
                logger.exception("cache_sweep_failed")

    def start(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="ttl-cache-sweeper", daemon=True)
        self._sweeper.start()

    def close(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None
        self.clear()


def build_key(prefix: str, params: dict[str, Any]) -> str:
    encoded = json.dumps(params, sort_keys=True, default=str)
    return f"{prefix}:{encoded}"


def get_cache() -> TTLCache:
    from app.container import container

    return container.cache()
