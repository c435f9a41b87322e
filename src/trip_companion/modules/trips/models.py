from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import JSON, Date, Float, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trip_companion.core.models import Base, Timestamped, UUIDPrimaryKey


class Project(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "trips_project"

    user_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(160))
    # Lower-cased name; lookups by name are case-insensitive.
    name_key: Mapped[str] = mapped_column(String(160), index=True)
    producer: Mapped[str | None] = mapped_column(String(200), nullable=True)

    __table_args__ = (UniqueConstraint("user_id", "name_key"),)


class Trip(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "trips_trip"

    user_id: Mapped[str] = mapped_column(String(64), index=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("trips_project.id"), nullable=True, index=True
    )
    trip_date: Mapped[date] = mapped_column(Date)
    purpose: Mapped[str | None] = mapped_column(String(300), nullable=True)
    producer: Mapped[str | None] = mapped_column(String(200), nullable=True)
    locations: Mapped[list] = mapped_column(JSON, default=list)
    distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    source: Mapped[str] = mapped_column(String(20), default="manual")
    callsheet_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("callsheets_job.id"), nullable=True, unique=True
    )

    project = relationship("Project")


class ProjectDocument(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "trips_project_document"

    user_id: Mapped[str] = mapped_column(String(64), index=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    trip_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    name: Mapped[str] = mapped_column(String(512))
    storage_path: Mapped[str] = mapped_column(String(1024))
    type: Mapped[str] = mapped_column(String(20))
    kind: Mapped[str] = mapped_column(String(20), default="invoice")

    __table_args__ = (UniqueConstraint("user_id", "storage_path"),)
