from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trip_companion.core.models import Base, Timestamped, UUIDPrimaryKey


class JobStatus(str, enum.Enum):
    CREATED = "created"
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"
    NEEDS_REVIEW = "needs_review"
    CANCELLED = "cancelled"


class CallsheetJob(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "callsheets_job"

    user_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, native_enum=False), index=True, default=JobStatus.CREATED
    )

    filename: Mapped[str] = mapped_column(String(512))
    content_type: Mapped[str | None] = mapped_column(String(200), nullable=True)
    byte_size: Mapped[int] = mapped_column(Integer, default=0)
    storage_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    result = relationship("CallsheetResult", uselist=False, back_populates="job")
    locations = relationship(
        "CallsheetLocation", back_populates="job", order_by="CallsheetLocation.position"
    )


class CallsheetResult(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "callsheets_result"

    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("callsheets_job.id"), unique=True
    )
    date_value: Mapped[str | None] = mapped_column(String(10), nullable=True)
    project_value: Mapped[str | None] = mapped_column(String(160), nullable=True)
    producer_value: Mapped[str | None] = mapped_column(String(200), nullable=True)
    companies: Mapped[list] = mapped_column(JSON, default=list)
    raw: Mapped[dict] = mapped_column(JSON, default=dict)

    job = relationship("CallsheetJob", back_populates="result")


class CallsheetLocation(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "callsheets_location"

    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("callsheets_job.id"), index=True
    )
    position: Mapped[int] = mapped_column(Integer)

    address_raw: Mapped[str] = mapped_column(String(300))
    formatted_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    place_id: Mapped[str | None] = mapped_column(String(300), nullable=True)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    used_fallback: Mapped[bool] = mapped_column(Boolean, default=False)

    job = relationship("CallsheetJob", back_populates="locations")
