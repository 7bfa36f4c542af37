from __future__ import annotations

from celery import Celery

from buildflow_inbox.core.config import settings


def make_celery() -> Celery:
    app = Celery("buildflow_inbox", broker=settings.redis_url, backend=settings.redis_url)
    app.conf.update(
        task_always_eager=settings.environment in {"dev", "test"},
        task_eager_propagates=True,
        task_track_started=True,
    )
    if settings.intake_poll_minutes:
        app.conf.beat_schedule = {
            "poll-mailbox": {
                "task": "run_intake",
                "schedule": float(settings.intake_poll_minutes) * 60.0,
            }
        }
    app.autodiscover_tasks(["buildflow_inbox.worker.tasks"])
    return app


celery_app = make_celery()
