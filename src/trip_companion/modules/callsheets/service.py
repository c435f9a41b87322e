from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from trip_companion.core.config import settings
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.logging import get_logger, log_event, log_exception
from trip_companion.core.storage import StorageError, get_storage, safe_key
from trip_companion.modules.callsheets.models import (
    CallsheetJob,
    CallsheetLocation,
    CallsheetResult,
    JobStatus,
)
from trip_companion.modules.callsheets.state import Writer, is_terminal, transition
from trip_companion.modules.identity.service import get_profile
from trip_companion.modules.identity.session import Identity
from trip_companion.modules.limits.plans import get_plan_limits
from trip_companion.modules.locations.resolver import LocationCandidate, LocationResolver
from trip_companion.modules.trips.models import Trip
from trip_companion.modules.trips.service import create_trip

logger = get_logger(__name__)

ALLOWED_CONTENT_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}
_CONTENT_TYPE_BY_EXTENSION: dict[str, str] = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
}
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
REVIEWABLE_STATUSES = frozenset({JobStatus.DONE, JobStatus.NEEDS_REVIEW})


@dataclass(frozen=True)
class ReviewLocation:
    raw_text: str
    address: str
    used_fallback: bool


@dataclass(frozen=True)
class CallsheetReview:
    job_id: uuid.UUID
    date: str | None
    project_name: str | None
    producer: str | None
    locations: list[ReviewLocation]
    distance_km: float | None
    fallbacks: list[str] = field(default_factory=list)


def safe_filename(filename: str) -> str:
    name = filename.replace("\\", "/").rsplit("/", 1)[-1].strip()
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    return name[:200] or "callsheet"


def validate_upload(filename: str | None, content_type: str | None, size: int) -> str:
    """Reject an upload before any job exists; returns the effective content type."""
    if not filename or size <= 0:
        raise PipelineError(ErrorKind.VALIDATION, "No file uploaded")
    if size > settings.max_upload_bytes:
        raise PipelineError(
            ErrorKind.PAYLOAD_TOO_LARGE,
            f"File too large (max {settings.max_upload_bytes // (1024 * 1024)} MB)",
        )
    ctype = (content_type or "").split(";", 1)[0].strip().lower()
    if ctype in {"", "application/octet-stream"}:
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        ctype = _CONTENT_TYPE_BY_EXTENSION.get(ext, ctype)
    if ctype not in ALLOWED_CONTENT_TYPES:
        raise PipelineError(ErrorKind.VALIDATION, "Unsupported file type (PDF, PNG, JPEG, WebP)")
    return ctype


def create_job(
    session: Session,
    *,
    identity: Identity,
    filename: str | None,
    content_type: str | None,
    body: bytes,
    enqueue: bool = True,
) -> CallsheetJob:
    ctype = validate_upload(filename, content_type, len(body))
    name = safe_filename(filename or "")

    job = CallsheetJob(
        user_id=identity.id,
        status=JobStatus.CREATED,
        filename=name,
        content_type=ctype,
        byte_size=len(body),
    )
    session.add(job)
    session.commit()
    log_event(logger, "callsheet.job.created", job_id=str(job.id), byte_size=len(body))

    key = safe_key("callsheets", identity.id, str(job.id), name)
    try:
        get_storage().put(key=key, body=body)
    except StorageError as e:
        job.error = "Upload failed"
        session.add(job)
        session.commit()
        raise PipelineError(ErrorKind.UPSTREAM_UNAVAILABLE, "Could not store upload") from e

    job.storage_path = key
    session.add(job)
    session.commit()
    if enqueue:
        queue_job(session, job=job)
    return job


def queue_job(session: Session, *, job: CallsheetJob) -> CallsheetJob:
    """Hand a stored job to the worker; re-sending an already queued job is harmless."""
    if not job.storage_path:
        raise PipelineError(ErrorKind.CONFLICT, "Job has no stored file")
    if job.status == JobStatus.CREATED:
        transition(job, JobStatus.QUEUED, Writer.ORCHESTRATOR)
        job.error = None
        session.add(job)
        session.commit()
    elif job.status != JobStatus.QUEUED:
        raise PipelineError(ErrorKind.CONFLICT, f"Job is already {job.status.value}")

    from trip_companion.worker.tasks import process_callsheet_job_task

    async_result = process_callsheet_job_task.delay(str(job.id))
    log_event(
        logger,
        "celery.task.enqueued",
        task_name="process_callsheet_job",
        celery_task_id=async_result.id,
        job_id=str(job.id),
    )
    session.refresh(job)
    return job


def get_job_for_user(session: Session, *, job_id: uuid.UUID, identity: Identity) -> CallsheetJob:
    job = session.scalar(
        select(CallsheetJob).where(CallsheetJob.id == job_id, CallsheetJob.user_id == identity.id)
    )
    if not job:
        raise PipelineError(ErrorKind.NOT_FOUND, "Job not found")
    return job


def cancel_job(session: Session, *, job: CallsheetJob) -> CallsheetJob:
    transition(job, JobStatus.CANCELLED, Writer.ORCHESTRATOR)
    session.add(job)
    session.commit()
    return job


def _require_reviewable(job: CallsheetJob) -> CallsheetResult:
    if job.status not in REVIEWABLE_STATUSES:
        raise PipelineError(
            ErrorKind.CONFLICT,
            "Job has failed" if is_terminal(job.status) else "Job is not finished yet",
        )
    if job.result is None:
        raise PipelineError(ErrorKind.NOT_FOUND, "Job result not found")
    return job.result


def job_result(job: CallsheetJob) -> tuple[CallsheetResult, list[CallsheetLocation]]:
    result = _require_reviewable(job)
    return result, list(job.locations)


def review_job(
    session: Session,
    *,
    job: CallsheetJob,
    resolver: LocationResolver | None = None,
) -> CallsheetReview:
    """Resolve the extracted locations against the user's profile for the review screen."""
    result = _require_reviewable(job)
    rows = list(job.locations)
    raw = [row.address_raw for row in rows]
    profile = get_profile(session, user_id=job.user_id)
    limits = get_plan_limits(profile.plan_tier)
    resolver = resolver or LocationResolver()

    try:
        route = resolver.optimize(raw, profile, max_waypoints=limits.max_stops_per_trip)
    except Exception:
        log_exception(logger, "callsheet.review.resolver_failed", job_id=str(job.id))
        return CallsheetReview(
            job_id=job.id,
            date=result.date_value,
            project_name=result.project_value,
            producer=result.producer_value,
            locations=[ReviewLocation(raw_text=r, address=r, used_fallback=True) for r in raw],
            distance_km=None,
            fallbacks=["resolver_failed"],
        )

    for row, candidate in zip(rows, route.locations, strict=True):
        _apply_candidate(row, candidate)
        session.add(row)
    session.commit()

    return CallsheetReview(
        job_id=job.id,
        date=result.date_value,
        project_name=result.project_value,
        producer=result.producer_value,
        locations=[
            ReviewLocation(raw_text=c.raw_text, address=c.display, used_fallback=c.used_fallback)
            for c in route.locations
        ],
        distance_km=route.distance_km,
        fallbacks=route.fallbacks,
    )


def _apply_candidate(row: CallsheetLocation, candidate: LocationCandidate) -> None:
    row.used_fallback = candidate.used_fallback
    if candidate.used_fallback:
        return
    row.formatted_address = candidate.formatted_address
    row.place_id = candidate.place_id
    row.lat = candidate.lat
    row.lng = candidate.lng


def confirm_job(
    session: Session,
    *,
    job: CallsheetJob,
    trip_date: date,
    project_name: str,
    producer: str | None,
    locations: list[str],
    distance_km: float | None,
    purpose: str | None = None,
) -> Trip:
    """Persist the reviewed call sheet as a trip, creating its project by name if needed."""
    _require_reviewable(job)
    existing = session.scalar(select(Trip).where(Trip.callsheet_job_id == job.id))
    if existing:
        raise PipelineError(ErrorKind.CONFLICT, "Call sheet already confirmed")

    stops = [loc.strip() for loc in locations if loc and loc.strip()]
    if not stops:
        raise PipelineError(ErrorKind.VALIDATION, "At least one location is required")
    if distance_km is not None and distance_km < 0:
        raise PipelineError(ErrorKind.VALIDATION, "distance_km must not be negative")

    trip = create_trip(
        session,
        user_id=job.user_id,
        trip_date=trip_date,
        project_name=project_name,
        producer=producer,
        locations=stops,
        distance_km=distance_km,
        purpose=purpose,
        source="callsheet",
        callsheet_job_id=job.id,
    )
    log_event(logger, "callsheet.job.confirmed", job_id=str(job.id), trip_id=str(trip.id))
    return trip
