from __future__ import annotations

import os
import shutil
from pathlib import Path

import httpx
import pytest

# Set env before any trip_companion imports (settings/engine are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./.trip_companion_test.db")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ.setdefault("IDENTITY_URL", "https://identity.test")
os.environ.setdefault("IDENTITY_SERVICE_KEY", "service-key")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
for _optional in (
    "AI_API_KEY",
    "MAPS_API_KEY",
    "CLIMATIQ_API_KEY",
    "ELECTRICITY_MAPS_API_KEY",
):
    os.environ.pop(_optional, None)


def _identity_handler(request: httpx.Request) -> httpx.Response:
    """Fake identity provider: ``Bearer token-<user>`` is user ``<user>``."""
    token = request.headers.get("authorization", "").removeprefix("Bearer ").strip()
    if not token.startswith("token-"):
        return httpx.Response(401, json={"msg": "invalid JWT"})
    user_id = token.removeprefix("token-")
    return httpx.Response(200, json={"id": user_id, "email": f"{user_id}@example.com"})


@pytest.fixture(autouse=True)
def _reset_db_and_storage() -> None:
    import trip_companion.models  # noqa: F401
    from trip_companion.core.db import engine
    from trip_companion.core.models import Base

    import trip_companion.core.storage as storage_mod

    storage_mod._storage = None

    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    # Reset DB schema
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    yield


@pytest.fixture(autouse=True)
def _reset_process_caches() -> None:
    import trip_companion.modules.identity.session as session_mod
    import trip_companion.modules.limits.rate_limit as rate_limit_mod
    from trip_companion.modules.factors.service import clear_factor_caches

    session_mod.identity_cache.clear()
    session_mod._validator = session_mod.SessionValidator(
        cache=session_mod.identity_cache,
        client_factory=lambda: httpx.Client(transport=httpx.MockTransport(_identity_handler)),
    )
    rate_limit_mod._limiter = None
    clear_factor_caches()

    yield

    session_mod._validator = None


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient

    from trip_companion.main import create_app

    return TestClient(create_app())


@pytest.fixture()
def auth_headers():
    def _headers(user_id: str = "user-1") -> dict[str, str]:
        return {"Authorization": f"Bearer token-{user_id}"}

    return _headers
