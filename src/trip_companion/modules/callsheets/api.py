from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from trip_companion.core.db import db_session
from trip_companion.core.logging import get_logger, log_event
from trip_companion.modules.callsheets.schemas import (
    CallsheetConfirmIn,
    CallsheetJobOut,
    CallsheetLocationOut,
    CallsheetResultOut,
    CallsheetReviewOut,
    ReviewLocationOut,
    TripOut,
)
from trip_companion.modules.callsheets.service import (
    cancel_job,
    confirm_job,
    create_job,
    get_job_for_user,
    job_result,
    queue_job,
    review_job,
)
from trip_companion.modules.identity.session import Identity
from trip_companion.modules.limits.rate_limit import rate_limited
from trip_companion.modules.locations.resolver import LocationResolver

router = APIRouter(tags=["callsheets"])
logger = get_logger(__name__)


def get_location_resolver() -> LocationResolver:
    return LocationResolver()


@router.post("/callsheets", response_model=CallsheetJobOut)
async def upload_callsheet(
    upload: UploadFile = File(...),
    session: Session = Depends(db_session),
    identity: Identity = Depends(rate_limited("callsheet_create", limit=10, window_ms=60_000)),
) -> CallsheetJobOut:
    body = await upload.read()
    log_event(
        logger,
        "upload.received",
        filename=upload.filename,
        content_type=upload.content_type,
        byte_size=len(body),
    )
    job = create_job(
        session,
        identity=identity,
        filename=upload.filename,
        content_type=upload.content_type,
        body=body,
    )
    return CallsheetJobOut.model_validate(job, from_attributes=True)


@router.post("/callsheets/{job_id}/queue", response_model=CallsheetJobOut)
def queue_callsheet(
    job_id: uuid.UUID,
    session: Session = Depends(db_session),
    identity: Identity = Depends(rate_limited("callsheet_queue", limit=10, window_ms=10_000)),
) -> CallsheetJobOut:
    job = get_job_for_user(session, job_id=job_id, identity=identity)
    return CallsheetJobOut.model_validate(queue_job(session, job=job), from_attributes=True)


@router.get("/callsheets/{job_id}", response_model=CallsheetJobOut)
def callsheet_status(
    job_id: uuid.UUID,
    session: Session = Depends(db_session),
    identity: Identity = Depends(rate_limited("callsheet_status", limit=120, window_ms=60_000)),
) -> CallsheetJobOut:
    job = get_job_for_user(session, job_id=job_id, identity=identity)
    return CallsheetJobOut.model_validate(job, from_attributes=True)


@router.get("/callsheets/{job_id}/result", response_model=CallsheetResultOut)
def callsheet_result(
    job_id: uuid.UUID,
    session: Session = Depends(db_session),
    identity: Identity = Depends(rate_limited("callsheet_status", limit=120, window_ms=60_000)),
) -> CallsheetResultOut:
    job = get_job_for_user(session, job_id=job_id, identity=identity)
    result, locations = job_result(job)
    return CallsheetResultOut(
        job=CallsheetJobOut.model_validate(job, from_attributes=True),
        date=result.date_value,
        project_name=result.project_value,
        producer=result.producer_value,
        production_companies=list(result.companies or []),
        locations=[
            CallsheetLocationOut.model_validate(loc, from_attributes=True) for loc in locations
        ],
    )


@router.post("/callsheets/{job_id}/review", response_model=CallsheetReviewOut)
def review_callsheet(
    job_id: uuid.UUID,
    session: Session = Depends(db_session),
    identity: Identity = Depends(rate_limited("callsheet_review", limit=20, window_ms=60_000)),
    resolver: LocationResolver = Depends(get_location_resolver),
) -> CallsheetReviewOut:
    job = get_job_for_user(session, job_id=job_id, identity=identity)
    review = review_job(session, job=job, resolver=resolver)
    return CallsheetReviewOut(
        job_id=review.job_id,
        date=review.date,
        project_name=review.project_name,
        producer=review.producer,
        locations=[
            ReviewLocationOut(
                raw_text=loc.raw_text, address=loc.address, used_fallback=loc.used_fallback
            )
            for loc in review.locations
        ],
        distance_km=review.distance_km,
        fallbacks=review.fallbacks,
    )


@router.post("/callsheets/{job_id}/confirm", response_model=TripOut)
def confirm_callsheet(
    job_id: uuid.UUID,
    payload: CallsheetConfirmIn,
    session: Session = Depends(db_session),
    identity: Identity = Depends(rate_limited("callsheet_confirm", limit=20, window_ms=60_000)),
) -> TripOut:
    job = get_job_for_user(session, job_id=job_id, identity=identity)
    trip = confirm_job(
        session,
        job=job,
        trip_date=payload.trip_date,
        project_name=payload.project_name,
        producer=payload.producer,
        locations=payload.locations,
        distance_km=payload.distance_km,
        purpose=payload.purpose,
    )
    return TripOut.model_validate(trip, from_attributes=True)


@router.post("/callsheets/{job_id}/cancel", response_model=CallsheetJobOut)
def cancel_callsheet(
    job_id: uuid.UUID,
    session: Session = Depends(db_session),
    identity: Identity = Depends(rate_limited("callsheet_queue", limit=10, window_ms=10_000)),
) -> CallsheetJobOut:
    job = get_job_for_user(session, job_id=job_id, identity=identity)
    return CallsheetJobOut.model_validate(cancel_job(session, job=job), from_attributes=True)
