from __future__ import annotations

import time

import httpx
import pytest
from jose import jwt

from trip_companion.core.cache import TTLCache
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.modules.identity.session import (
    EXPIRY_SAFETY_MARGIN_SECONDS,
    Identity,
    SessionValidator,
    bearer_token,
    cache_expiry,
)


def _token(exp: float | None) -> str:
    claims = {"sub": "user-1"}
    if exp is not None:
        claims["exp"] = int(exp)
    return jwt.encode(claims, "secret", algorithm="HS256")


def _validator(calls: list[str], clock=time.time) -> SessionValidator:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.headers["authorization"])
        assert request.headers["apikey"] == "service-key"
        assert request.url.path == "/auth/v1/user"
        return httpx.Response(200, json={"id": "user-1", "email": "u@example.com"})

    return SessionValidator(
        cache=TTLCache(max_entries=10, clock=clock),
        client_factory=lambda: httpx.Client(transport=httpx.MockTransport(handler)),
        clock=clock,
    )


def test_bearer_token_parsing():
    assert bearer_token("Bearer abc") == "abc"
    assert bearer_token("bearer   abc ") == "abc"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None


def test_cache_expiry_uses_exp_minus_margin_capped_at_max_ttl():
    now = 1_000_000.0
    short = _token(now + 120)
    expected = now + 120 - EXPIRY_SAFETY_MARGIN_SECONDS
    assert cache_expiry(short, now=now, max_ttl_seconds=300) == expected

    long_lived = _token(now + 3600)
    assert cache_expiry(long_lived, now=now, max_ttl_seconds=300) == now + 300


def test_validated_identity_is_cached_until_expiry():
    now = [time.time()]
    calls: list[str] = []
    validator = _validator(calls, clock=lambda: now[0])
    token = _token(now[0] + 100)

    assert validator.validate(token) == Identity(id="user-1", email="u@example.com")
    assert validator.validate(token).id == "user-1"
    assert len(calls) == 1

    # Past exp - margin the cached identity is never served.
    now[0] += 100 - EXPIRY_SAFETY_MARGIN_SECONDS
    validator.validate(token)
    assert len(calls) == 2


def test_rejected_credential_is_not_cached():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"msg": "bad"})

    validator = SessionValidator(
        cache=TTLCache(max_entries=10),
        client_factory=lambda: httpx.Client(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(PipelineError) as exc:
        validator.validate("nope")
    assert exc.value.kind == ErrorKind.AUTHENTICATION
    assert exc.value.status_code == 401


def test_network_failure_is_an_authentication_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    validator = SessionValidator(
        cache=TTLCache(max_entries=10),
        client_factory=lambda: httpx.Client(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(PipelineError) as exc:
        validator.validate("token")
    assert exc.value.kind == ErrorKind.AUTHENTICATION


def test_missing_identity_configuration_is_a_server_error(monkeypatch):
    from trip_companion.core.config import settings

    monkeypatch.setattr(settings, "identity_url", None)
    with pytest.raises(PipelineError) as exc:
        _validator([]).validate("token")
    assert exc.value.kind == ErrorKind.CONFIGURATION
    assert exc.value.status_code == 500


def test_missing_header_returns_401(client):
    resp = client.get("/api/user/profile")
    assert resp.status_code == 401
    assert resp.json()["error"] == "authentication"
