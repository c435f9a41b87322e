"""
Worker side of the call sheet pipeline.

The worker is the only writer of ``processing``, ``done``, ``failed`` and
``needs_review``. Claiming a job is a conditional UPDATE, so a redelivered task
for a job another worker already took is a no-op.
"""

from __future__ import annotations

import time
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from trip_companion.core.config import settings
from trip_companion.core.db import SessionLocal
from trip_companion.core.errors import PipelineError
from trip_companion.core.logging import get_logger, log_event, log_exception, monotonic_ms
from trip_companion.core.storage import StorageError, get_storage
from trip_companion.modules.callsheets.models import (
    CallsheetJob,
    CallsheetLocation,
    CallsheetResult,
    JobStatus,
)
from trip_companion.modules.callsheets.state import Writer, transition
from trip_companion.modules.extraction.ai import generate_structured
from trip_companion.modules.extraction.normalizer import (
    CallsheetFields,
    normalize_callsheet,
    parse_json_object,
)
from trip_companion.modules.extraction.prompts import CALLSHEET_PROMPT, CALLSHEET_SCHEMA
from trip_companion.modules.limits.plans import AiKind
from trip_companion.modules.limits.quota import check_quota, record_usage

logger = get_logger(__name__)

# Last-resort title the extraction prompt allows; such results need a human look.
UNTITLED_PROJECT = "untitled project"


def claim_job(session: Session, *, job_id: uuid.UUID) -> CallsheetJob | None:
    result = session.execute(
        update(CallsheetJob)
        .where(CallsheetJob.id == job_id, CallsheetJob.status == JobStatus.QUEUED)
        .values(status=JobStatus.PROCESSING, processing_started_at=datetime.now(UTC), error=None)
    )
    if not result.rowcount:
        session.rollback()
        return None
    session.commit()
    job = session.get(CallsheetJob, job_id)
    if job is not None:
        session.refresh(job)
        log_event(logger, "callsheet.job.claimed", job_id=str(job_id))
    return job


def _finish(
    session: Session, job: CallsheetJob, status: JobStatus, error: str | None = None
) -> None:
    transition(job, status, Writer.WORKER)
    job.error = error
    job.processed_at = datetime.now(UTC)
    session.add(job)
    session.commit()


def fail_job(session: Session, job: CallsheetJob, message: str) -> None:
    _finish(session, job, JobStatus.FAILED, message)
    log_event(logger, "callsheet.job.failed", job_id=str(job.id), error_message=message)


def process_callsheet_job(*, job_id: str) -> None:
    with SessionLocal() as session:
        job = claim_job(session, job_id=uuid.UUID(job_id))
        if job is None:
            log_event(logger, "callsheet.job.skipped", job_id=job_id)
            return

        start = time.monotonic()
        quota = check_quota(session, user_id=job.user_id)
        if not quota.allowed:
            fail_job(session, job, "Monthly AI quota exceeded")
            return

        try:
            body = get_storage().get(key=job.storage_path or "")
        except StorageError:
            log_exception(logger, "callsheet.job.download_failed", job_id=job_id)
            fail_job(session, job, "Source file unavailable")
            return
        if len(body) > settings.max_upload_bytes:
            fail_job(session, job, "File too large")
            return

        try:
            raw = parse_json_object(
                generate_structured(
                    CALLSHEET_PROMPT,
                    body,
                    job.content_type or "application/pdf",
                    CALLSHEET_SCHEMA,
                )
            )
            fields = normalize_callsheet(raw)
        except PipelineError as e:
            fail_job(session, job, e.message)
            return

        _save_result(session, job=job, fields=fields, raw=raw)
        needs_review = fields.project_name.strip().lower() == UNTITLED_PROJECT
        _finish(session, job, JobStatus.NEEDS_REVIEW if needs_review else JobStatus.DONE)
        record_usage(
            session,
            user_id=job.user_id,
            kind=AiKind.CALLSHEET,
            reference=str(job.id),
        )
        log_event(
            logger,
            "callsheet.job.done",
            job_id=job_id,
            status=job.status.value,
            locations=len(fields.locations),
            duration_ms=monotonic_ms(start),
        )


def _save_result(
    session: Session, *, job: CallsheetJob, fields: CallsheetFields, raw: dict
) -> None:
    session.add(
        CallsheetResult(
            job_id=job.id,
            date_value=fields.date,
            project_value=fields.project_name,
            producer_value=fields.producer,
            companies=fields.production_companies,
            raw=raw,
        )
    )
    for position, address in enumerate(fields.locations):
        session.add(CallsheetLocation(job_id=job.id, position=position, address_raw=address))
    session.flush()


def fail_stuck_jobs(*, now: datetime | None = None) -> int:
    """Fail jobs that have been ``processing`` longer than the configured timeout."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(minutes=settings.job_stuck_timeout_minutes)
    with SessionLocal() as session:
        stuck = list(
            session.scalars(
                select(CallsheetJob).where(
                    CallsheetJob.status == JobStatus.PROCESSING,
                    CallsheetJob.processing_started_at < cutoff,
                )
            )
        )
        for job in stuck:
            fail_job(session, job, "Processing timed out")
    if stuck:
        log_event(logger, "callsheet.jobs.stuck_failed", count=len(stuck))
    return len(stuck)
