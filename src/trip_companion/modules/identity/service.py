from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from trip_companion.modules.identity.models import UserProfile
from trip_companion.modules.identity.session import Identity


def get_profile(session: Session, *, user_id: str) -> UserProfile:
    """Stored profile for the user, or an unsaved default one (basic plan, no location)."""
    profile = session.scalar(select(UserProfile).where(UserProfile.user_id == user_id))
    if profile is None:
        return UserProfile(user_id=user_id, plan_tier="basic")
    return profile


def update_profile(session: Session, *, identity: Identity, **changes: str | None) -> UserProfile:
    profile = session.scalar(select(UserProfile).where(UserProfile.user_id == identity.id))
    if profile is None:
        profile = UserProfile(user_id=identity.id, email=identity.email, plan_tier="basic")
    for field in ("base_address", "city", "country"):
        if field in changes:
            value = changes[field]
            cleaned = value.strip() if isinstance(value, str) else ""
            setattr(profile, field, cleaned or None)
    session.add(profile)
    session.commit()
    session.refresh(profile)
    return profile
