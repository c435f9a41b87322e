from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from trip_companion.core.models import Base, Timestamped, UUIDPrimaryKey, utcnow


class AiUsageEvent(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "limits_ai_usage_event"
    __table_args__ = (UniqueConstraint("kind", "reference", name="uq_ai_usage_kind_reference"),)

    user_id: Mapped[str] = mapped_column(String(64), index=True)
    kind: Mapped[str] = mapped_column(String(20))
    # Job id for call sheets, request id for synchronous receipt extraction.
    reference: Mapped[str] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(20), default="done")
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
