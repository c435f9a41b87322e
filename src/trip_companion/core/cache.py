"""
Process-wide TTL caches.

Entries are populated on miss, expire by wall-clock time and are dropped all at
once when the cache reaches its capacity. Losing the cache (restart, clear) only
costs extra upstream calls.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    payload: T
    expires_at: float


class TTLCache(Generic[T]):
    def __init__(self, *, max_entries: int, clock: Clock = time.time) -> None:
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.payload

    def put(self, key: str, payload: T, *, ttl_seconds: float) -> None:
        self.put_until(key, payload, expires_at=self._clock() + ttl_seconds)

    def put_until(self, key: str, payload: T, *, expires_at: float) -> None:
        with self._lock:
            if expires_at <= self._clock():
                return
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._entries.clear()
            self._entries[key] = CacheEntry(payload=payload, expires_at=expires_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def now(self) -> float:
        return self._clock()

    def __len__(self) -> int:
        return len(self._entries)


def cache_key(*parts: Any, version: str) -> str:
    normalized = [str(p).strip().lower() for p in parts if p is not None]
    return ":".join([*normalized, version])
