from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from trip_companion.api.deps import get_current_identity
from trip_companion.core.db import db_session
from trip_companion.modules.identity.schemas import AiQuotaOut, ProfileOut, ProfileUpdateIn
from trip_companion.modules.identity.service import get_profile, update_profile
from trip_companion.modules.identity.session import Identity
from trip_companion.modules.limits.quota import check_quota

router = APIRouter(tags=["identity"])


@router.get("/user/profile", response_model=ProfileOut)
def read_profile(
    session: Session = Depends(db_session),
    identity: Identity = Depends(get_current_identity),
) -> ProfileOut:
    out = ProfileOut.model_validate(get_profile(session, user_id=identity.id), from_attributes=True)
    if out.email is None:
        out.email = identity.email
    return out


@router.put("/user/profile", response_model=ProfileOut)
def write_profile(
    payload: ProfileUpdateIn,
    session: Session = Depends(db_session),
    identity: Identity = Depends(get_current_identity),
) -> ProfileOut:
    profile = update_profile(session, identity=identity, **payload.model_dump(exclude_unset=True))
    return ProfileOut.model_validate(profile, from_attributes=True)


@router.get("/user/ai-quota", response_model=AiQuotaOut)
def ai_quota(
    session: Session = Depends(db_session),
    identity: Identity = Depends(get_current_identity),
) -> AiQuotaOut:
    decision = check_quota(session, user_id=identity.id)
    return AiQuotaOut(
        allowed=decision.allowed,
        remaining=decision.remaining,
        limit=decision.limit,
        used=decision.used,
        plan_tier=get_profile(session, user_id=identity.id).plan_tier,
    )
