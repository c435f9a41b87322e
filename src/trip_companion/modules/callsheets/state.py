"""
Call sheet job lifecycle.

    created -> queued -> processing -> done | failed | needs_review
    created | queued -> cancelled

Jobs never move backward and terminal states are immutable. The request side
(``Writer.ORCHESTRATOR``) only queues and cancels; everything past ``queued`` is
written by the worker alone, so there is exactly one writer per transition.
"""

from __future__ import annotations

import enum

from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.logging import get_logger, log_event
from trip_companion.modules.callsheets.models import CallsheetJob, JobStatus

logger = get_logger(__name__)


class Writer(str, enum.Enum):
    ORCHESTRATOR = "orchestrator"
    WORKER = "worker"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset(
    {JobStatus.DONE, JobStatus.FAILED, JobStatus.NEEDS_REVIEW, JobStatus.CANCELLED}
)

_TRANSITIONS: dict[tuple[JobStatus, JobStatus], Writer] = {
    (JobStatus.CREATED, JobStatus.QUEUED): Writer.ORCHESTRATOR,
    (JobStatus.CREATED, JobStatus.CANCELLED): Writer.ORCHESTRATOR,
    (JobStatus.QUEUED, JobStatus.CANCELLED): Writer.ORCHESTRATOR,
    (JobStatus.QUEUED, JobStatus.PROCESSING): Writer.WORKER,
    (JobStatus.PROCESSING, JobStatus.DONE): Writer.WORKER,
    (JobStatus.PROCESSING, JobStatus.FAILED): Writer.WORKER,
    (JobStatus.PROCESSING, JobStatus.NEEDS_REVIEW): Writer.WORKER,
}


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: JobStatus, target: JobStatus, writer: Writer) -> bool:
    return _TRANSITIONS.get((current, target)) == writer


def transition(job: CallsheetJob, target: JobStatus, writer: Writer) -> CallsheetJob:
    """Move ``job`` to ``target`` in memory; the caller commits."""
    current = JobStatus(job.status)
    if not can_transition(current, target, writer):
        log_event(
            logger,
            "callsheet.job.transition_rejected",
            job_id=str(job.id),
            from_status=current.value,
            to_status=target.value,
            writer=writer.value,
        )
        raise PipelineError(
            ErrorKind.CONFLICT,
            f"Job cannot move from {current.value} to {target.value}",
        )
    job.status = target
    log_event(
        logger,
        "callsheet.job.transition",
        job_id=str(job.id),
        from_status=current.value,
        to_status=target.value,
        writer=writer.value,
    )
    return job
