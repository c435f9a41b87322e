from __future__ import annotations

from celery import Celery

from trip_companion.core.config import settings


def make_celery() -> Celery:
    app = Celery("trip_companion", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.environment in {"dev", "test"},
        task_eager_propagates=True,
        task_track_started=True,
        beat_schedule={
            "sweep-stuck-callsheet-jobs": {
                "task": "sweep_stuck_callsheet_jobs",
                "schedule": 60.0,
            },
        },
    )
    app.autodiscover_tasks(["trip_companion.worker.tasks"])
    return app


celery_app = make_celery()
