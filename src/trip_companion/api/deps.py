from __future__ import annotations

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from trip_companion.core.logging import set_user_context
from trip_companion.modules.identity.session import Identity, get_session_validator

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    token = credentials.credentials if credentials else None
    identity = get_session_validator().validate(token)
    set_user_context(identity.id)
    return identity
