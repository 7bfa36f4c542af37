from __future__ import annotations

# Ensure all models are registered before any task runs
# isort: off
import buildflow_inbox.models  # noqa: F401
# isort: on

import time
from dataclasses import asdict

from buildflow_inbox.core.logging import (
    bind_context,
    get_logger,
    log_event,
    log_exception,
    monotonic_ms,
)
from buildflow_inbox.worker.celery_app import celery_app

logger = get_logger(__name__)


@celery_app.task(name="run_intake", bind=True)
def run_intake_task(self, window_days: int | None = None) -> dict:
    """Poll the mailbox once; scheduled by beat or enqueued from the API."""
    from buildflow_inbox.modules.intake.service import run_intake

    task_id = getattr(self.request, "id", None)
    start = time.monotonic()
    with bind_context(celery_task_id=task_id):
        log_event(logger, "celery.task.start", task_name="run_intake", window_days=window_days)
        try:
            summary = run_intake(window_days=window_days)
        except Exception:
            log_exception(
                logger,
                "celery.task.error",
                task_name="run_intake",
                duration_ms=monotonic_ms(start),
            )
            raise
        log_event(
            logger,
            "celery.task.finish",
            task_name="run_intake",
            documents_created=summary.documents_created,
            duration_ms=monotonic_ms(start),
        )
        return asdict(summary)
