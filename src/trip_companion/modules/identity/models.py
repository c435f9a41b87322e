from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from trip_companion.core.models import Base, Timestamped, UUIDPrimaryKey


class UserProfile(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "identity_user_profile"

    # Identity-provider user id; users themselves live with the provider.
    user_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    base_address: Mapped[str | None] = mapped_column(String(300), nullable=True)
    city: Mapped[str | None] = mapped_column(String(120), nullable=True)
    country: Mapped[str | None] = mapped_column(String(120), nullable=True)

    plan_tier: Mapped[str] = mapped_column(String(20), default="basic")
