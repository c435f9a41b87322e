from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import trip_companion.models  # noqa: F401
# isort: on

import time

from trip_companion.core.logging import (
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
    reset_task_context,
    set_task_context,
)
from trip_companion.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="process_callsheet_job", bind=True)
def process_callsheet_job_task(self, job_id: str) -> None:
    from trip_companion.modules.callsheets.worker import process_callsheet_job

    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    log_event(
        logger,
        "celery.task.start",
        task_name="process_callsheet_job",
        celery_task_id=task_id,
        job_id=job_id,
    )
    try:
        process_callsheet_job(job_id=job_id)
        log_event(
            logger,
            "celery.task.finish",
            task_name="process_callsheet_job",
            celery_task_id=task_id,
            job_id=job_id,
            duration_ms=monotonic_ms(start),
        )
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="process_callsheet_job",
            celery_task_id=task_id,
            job_id=job_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)


@celery_app.task(name="sweep_stuck_callsheet_jobs", bind=True)
def sweep_stuck_callsheet_jobs_task(self) -> int:
    from trip_companion.modules.callsheets.worker import fail_stuck_jobs

    task_id = getattr(self.request, "id", None)
    token = set_task_context(task_id)
    start = time.monotonic()
    try:
        count = fail_stuck_jobs()
        log_event(
            logger,
            "celery.task.finish",
            task_name="sweep_stuck_callsheet_jobs",
            celery_task_id=task_id,
            failed_jobs=count,
            duration_ms=monotonic_ms(start),
        )
        return count
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name="sweep_stuck_callsheet_jobs",
            celery_task_id=task_id,
            duration_ms=monotonic_ms(start),
        )
        raise
    finally:
        reset_task_context(token)
