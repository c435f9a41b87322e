from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trip_companion.core.logging import get_logger, log_event
from trip_companion.modules.trips.models import Project, ProjectDocument, Trip

logger = get_logger(__name__)


def get_or_create_project(
    session: Session, *, user_id: str, name: str, producer: str | None = None
) -> Project:
    """Find the user's project by name, ignoring case, or add a new one (not committed)."""
    clean = " ".join(name.split())
    key = clean.lower()
    project = session.scalar(
        select(Project).where(Project.user_id == user_id, Project.name_key == key)
    )
    if project:
        if producer and not project.producer:
            project.producer = producer
            session.add(project)
        return project
    project = Project(user_id=user_id, name=clean, name_key=key, producer=producer)
    session.add(project)
    session.flush()
    log_event(logger, "trips.project.created", project_id=str(project.id))
    return project


def create_trip(
    session: Session,
    *,
    user_id: str,
    trip_date: date,
    project_name: str | None,
    producer: str | None,
    locations: list[str],
    distance_km: float | None,
    purpose: str | None = None,
    source: str = "manual",
    callsheet_job_id: uuid.UUID | None = None,
) -> Trip:
    project = None
    if project_name and project_name.strip():
        project = get_or_create_project(
            session, user_id=user_id, name=project_name, producer=producer
        )
    trip = Trip(
        user_id=user_id,
        project_id=project.id if project else None,
        trip_date=trip_date,
        purpose=purpose or (project.name if project else None),
        producer=producer,
        locations=[loc for loc in locations if loc and loc.strip()],
        distance_km=distance_km,
        source=source,
        callsheet_job_id=callsheet_job_id,
    )
    session.add(trip)
    session.commit()
    session.refresh(trip)
    log_event(
        logger,
        "trips.trip.created",
        trip_id=str(trip.id),
        source=source,
        locations=len(trip.locations),
    )
    return trip


def add_project_document(
    session: Session,
    *,
    user_id: str,
    storage_path: str,
    doc_type: str,
    trip_id: uuid.UUID | None = None,
    project_id: uuid.UUID | None = None,
    kind: str = "invoice",
) -> ProjectDocument | None:
    """Reference an uploaded file from a trip or project; an existing reference is kept."""
    doc = ProjectDocument(
        user_id=user_id,
        project_id=project_id,
        trip_id=trip_id,
        name=storage_path.rsplit("/", 1)[-1] or "receipt.webp",
        storage_path=storage_path,
        type=doc_type,
        kind=kind,
    )
    session.add(doc)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        log_event(logger, "trips.document.duplicate", storage_path=storage_path)
        return None
    return doc
