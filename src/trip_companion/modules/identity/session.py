"""
Bearer credential validation against the identity provider.

Validated identities are cached per credential until shortly before the
credential's own ``exp`` claim, capped at ``identity_cache_max_ttl_seconds``.
The cache is process-local and best-effort: a miss costs one introspection call.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from jose import JWTError, jwt

from trip_companion.core.cache import Clock, TTLCache
from trip_companion.core.config import settings
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.logging import get_logger, log_event, monotonic_ms

logger = get_logger(__name__)

EXPIRY_SAFETY_MARGIN_SECONDS = 30
DEFAULT_TTL_SECONDS = 60

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass(frozen=True)
class Identity:
    id: str
    email: str | None = None


def bearer_token(authorization: str | None) -> str | None:
    if not isinstance(authorization, str):
        return None
    match = _BEARER_RE.match(authorization.strip())
    if not match:
        return None
    token = match.group(1).strip()
    return token or None


def credential_expiry(token: str) -> float | None:
    """Read the unverified ``exp`` claim; the provider has already vouched for the token."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


def cache_expiry(token: str, *, now: float, max_ttl_seconds: float) -> float:
    cap = now + max_ttl_seconds
    exp = credential_expiry(token)
    if exp is None:
        return min(now + DEFAULT_TTL_SECONDS, cap)
    return min(exp - EXPIRY_SAFETY_MARGIN_SECONDS, cap)


class SessionValidator:
    def __init__(
        self,
        *,
        cache: TTLCache[Identity],
        client_factory: Callable[[], httpx.Client] | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._cache = cache
        self._client_factory = client_factory or (
            lambda: httpx.Client(timeout=settings.identity_timeout_seconds)
        )
        self._clock = clock

    def validate(self, token: str | None) -> Identity:
        if not settings.identity_url or not settings.identity_service_key:
            raise PipelineError(
                ErrorKind.CONFIGURATION, "Identity provider is not configured"
            )
        if not token:
            raise PipelineError(ErrorKind.AUTHENTICATION, "Missing Authorization header")

        cached = self._cache.get(token)
        if cached is not None:
            return cached

        identity = self._introspect(token)
        expires_at = cache_expiry(
            token,
            now=self._clock(),
            max_ttl_seconds=settings.identity_cache_max_ttl_seconds,
        )
        self._cache.put_until(token, identity, expires_at=expires_at)
        return identity

    def _introspect(self, token: str) -> Identity:
        url = (settings.identity_url or "").rstrip("/") + "/auth/v1/user"
        start = time.monotonic()
        try:
            with self._client_factory() as client:
                resp = client.get(
                    url,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "apikey": settings.identity_service_key or "",
                    },
                )
        except httpx.HTTPError as e:
            log_event(
                logger,
                "identity.introspect.error",
                error_type=type(e).__name__,
                duration_ms=monotonic_ms(start),
            )
            raise PipelineError(ErrorKind.AUTHENTICATION, "Invalid session") from e

        if resp.status_code >= 400:
            log_event(
                logger,
                "identity.introspect.rejected",
                status_code=resp.status_code,
                duration_ms=monotonic_ms(start),
            )
            raise PipelineError(ErrorKind.AUTHENTICATION, "Invalid session")

        try:
            data = resp.json()
        except ValueError:
            data = None
        user_id = data.get("id") if isinstance(data, dict) else None
        if not user_id:
            raise PipelineError(ErrorKind.AUTHENTICATION, "Invalid session")

        email = data.get("email")
        return Identity(id=str(user_id), email=str(email) if email else None)


identity_cache: TTLCache[Identity] = TTLCache(max_entries=settings.identity_cache_max_entries)

_validator: SessionValidator | None = None


def get_session_validator() -> SessionValidator:
    global _validator  # noqa: PLW0603
    if _validator is None:
        _validator = SessionValidator(cache=identity_cache)
    return _validator
