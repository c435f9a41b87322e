"""
Monthly AI quota per user.

Usage is counted from recorded ``done`` events since the start of the current
UTC month, so the counter resets implicitly at the month boundary. Call sheet
jobs currently in ``processing`` reserve a slot for a short while so parallel
jobs cannot fan out past the limit.

Recording happens right after a successful AI call, not inside a transaction
with the check: two concurrent requests at ``limit - 1`` may both pass. At most
one extra call per race is accepted.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trip_companion.core.config import settings
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.logging import get_logger, log_event
from trip_companion.modules.callsheets.models import CallsheetJob, JobStatus
from trip_companion.modules.identity.service import get_profile
from trip_companion.modules.limits.models import AiUsageEvent
from trip_companion.modules.limits.plans import AiKind, get_plan_limits

logger = get_logger(__name__)

PROCESSING_RESERVATION = timedelta(minutes=30)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    limit: int
    used: int
    reserved: int = 0
    reason: str | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used - self.reserved)


def month_start_utc(now: datetime) -> datetime:
    now = now.astimezone(UTC)
    return datetime(now.year, now.month, 1, tzinfo=UTC)


def check_quota(session: Session, *, user_id: str, now: datetime | None = None) -> QuotaDecision:
    now = now or datetime.now(UTC)
    limit = get_plan_limits(get_profile(session, user_id=user_id).plan_tier).ai_jobs_per_month

    if settings.bypass_ai_limits:
        return QuotaDecision(allowed=True, limit=limit, used=0)

    used = session.scalar(
        select(func.count(AiUsageEvent.id)).where(
            AiUsageEvent.user_id == user_id,
            AiUsageEvent.status == "done",
            AiUsageEvent.run_at >= month_start_utc(now),
        )
    ) or 0
    reserved = session.scalar(
        select(func.count(CallsheetJob.id)).where(
            CallsheetJob.user_id == user_id,
            CallsheetJob.status == JobStatus.PROCESSING,
            CallsheetJob.processing_started_at >= now - PROCESSING_RESERVATION,
        )
    ) or 0

    if used >= limit or used + reserved > limit:
        reason = f"monthly_quota_exceeded:{used}/{limit}:reserved={reserved}"
        log_event(
            logger,
            "quota.denied",
            quota_user_id=user_id,
            used=used,
            reserved=reserved,
            limit=limit,
        )
        return QuotaDecision(
            allowed=False, limit=limit, used=used, reserved=reserved, reason=reason
        )
    return QuotaDecision(allowed=True, limit=limit, used=used, reserved=reserved)


def require_quota(session: Session, *, user_id: str) -> QuotaDecision:
    """Check quota and raise ``quota_exceeded`` when the user has no calls left."""
    decision = check_quota(session, user_id=user_id)
    if not decision.allowed:
        raise PipelineError(
            ErrorKind.QUOTA_EXCEEDED,
            "Monthly AI quota exceeded",
            extra={"remaining": decision.remaining, "limit": decision.limit},
        )
    return decision


def record_usage(
    session: Session,
    *,
    user_id: str,
    kind: AiKind,
    reference: str | None = None,
    run_at: datetime | None = None,
) -> None:
    event = AiUsageEvent(
        user_id=user_id,
        kind=kind.value,
        reference=reference or str(uuid.uuid4()),
        status="done",
        run_at=run_at or datetime.now(UTC),
    )
    session.add(event)
    try:
        session.commit()
    except IntegrityError:
        # Same job recorded twice (worker redelivery); the first record stands.
        session.rollback()
        return
    log_event(
        logger,
        "quota.recorded",
        quota_user_id=user_id,
        kind=kind.value,
        reference=event.reference,
    )
