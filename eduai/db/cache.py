from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


DEFAULT_TTL_SECONDS = 300.0


@dataclass(frozen=True)
class _CacheEntry:
    data: Any
    stored_at: float
    ttl_seconds: float


class QueryCache:
    """In-process TTL cache for query results.

    Expiry is checked lazily on read; there is no background sweep, so stale
    keys linger until read, invalidated or cleared.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _CacheEntry] = {}

    def set(self, key: str, data: Any, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        with self._lock:
            self._entries[key] = _CacheEntry(data=data, stored_at=self._clock(), ttl_seconds=float(ttl_seconds))

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at > entry.ttl_seconds:
                del self._entries[key]
                return None
            return entry.data

    def invalidate(self, pattern: str) -> int:
        """Drop every key containing ``pattern``; returns how many went."""
        with self._lock:
            doomed = [k for k in self._entries if pattern in k]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict[str, object]:
        with self._lock:
            keys = list(self._entries)
        return {"size": len(keys), "keys": keys}
