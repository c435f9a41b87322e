"""
Fixed-window rate limiting keyed by ``(operation name, identifier)``.

A rejected call raises a ``rate_limited`` PipelineError carrying the
``Retry-After`` headers, so every caller stops the same way.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import redis
from fastapi import Depends

from trip_companion.api.deps import get_current_identity
from trip_companion.core.cache import Clock
from trip_companion.core.config import settings
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.logging import get_logger, log_event
from trip_companion.modules.identity.session import Identity

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_ms: int


class RateLimitStore:
    def hit(self, key: str, window_ms: int) -> tuple[int, int]:  # pragma: no cover
        """Count one call in the current window; returns ``(count, ms until reset)``."""
        raise NotImplementedError


class MemoryRateLimitStore(RateLimitStore):
    """Per-process counters; each instance of the service limits independently."""

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        # key -> (window start, count, window length)
        self._windows: dict[str, tuple[float, int, int]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, window_ms: int) -> tuple[int, int]:
        now_ms = self._clock() * 1000
        with self._lock:
            started_ms, count, _ = self._windows.get(key, (now_ms, 0, window_ms))
            if now_ms - started_ms >= window_ms:
                started_ms, count = now_ms, 0
            count += 1
            self._windows[key] = (started_ms, count, window_ms)
            if len(self._windows) > 10_000:
                self._evict_expired(now_ms)
        return count, int(max(0, started_ms + window_ms - now_ms))

    def _evict_expired(self, now_ms: float) -> None:
        expired = [k for k, (s, _, w) in self._windows.items() if now_ms - s >= w]
        for k in expired:
            del self._windows[k]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RedisRateLimitStore(RateLimitStore):
    def __init__(self, client: redis.Redis, *, prefix: str = "tc:ratelimit") -> None:
        self._client = client
        self._prefix = prefix

    def hit(self, key: str, window_ms: int) -> tuple[int, int]:
        redis_key = f"{self._prefix}:{key}"
        pipe = self._client.pipeline()
        pipe.incr(redis_key)
        pipe.pttl(redis_key)
        count, ttl_ms = pipe.execute()
        if ttl_ms is None or int(ttl_ms) < 0:
            self._client.pexpire(redis_key, window_ms)
            ttl_ms = window_ms
        return int(count), int(ttl_ms)


class RateLimiter:
    def __init__(self, store: RateLimitStore) -> None:
        self._store = store

    def allow(self, name: str, identifier: str, limit: int, window_ms: int) -> RateLimitDecision:
        count, reset_ms = self._store.hit(f"{name}:{identifier}", window_ms)
        return RateLimitDecision(
            allowed=count <= limit,
            remaining=max(0, limit - count),
            reset_ms=reset_ms,
        )

    def enforce(self, *, name: str, identifier: str, limit: int, window_ms: int) -> None:
        decision = self.allow(name, identifier, limit, window_ms)
        if decision.allowed:
            return
        retry_after = max(1, math.ceil(decision.reset_ms / 1000))
        log_event(
            logger,
            "ratelimit.rejected",
            limiter=name,
            limit=limit,
            window_ms=window_ms,
            retry_after_s=retry_after,
        )
        raise PipelineError(
            ErrorKind.RATE_LIMITED,
            "Too many requests",
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Remaining": str(decision.remaining),
                "X-RateLimit-Reset": str(int(time.time() * 1000) + decision.reset_ms),
            },
            extra={"retryAfterSec": retry_after},
        )


_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _limiter  # noqa: PLW0603
    if _limiter is None:
        if settings.rate_limit_backend == "redis":
            store: RateLimitStore = RedisRateLimitStore(redis.Redis.from_url(settings.redis_url))
        else:
            store = MemoryRateLimitStore()
        _limiter = RateLimiter(store)
    return _limiter


def enforce_rate_limit(*, name: str, identifier: str, limit: int, window_ms: int) -> None:
    get_rate_limiter().enforce(name=name, identifier=identifier, limit=limit, window_ms=window_ms)


def rate_limited(name: str, *, limit: int, window_ms: int) -> Callable[..., Identity]:
    """Dependency: authenticate, then count the call against ``name`` for that user."""

    def _dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        enforce_rate_limit(name=name, identifier=identity.id, limit=limit, window_ms=window_ms)
        return identity

    return _dependency
