from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from buildflow_inbox.core.config import settings
from buildflow_inbox.core.logging import get_logger, log_event
from buildflow_inbox.modules.intake.models import ProcessingLogEntry, ProcessingStatus

logger = get_logger(__name__)

STALE_REASON = "stale processing entry"


def is_completed(session: Session, *, message_id: str) -> bool:
    found = session.scalar(
        select(ProcessingLogEntry.id).where(
            ProcessingLogEntry.message_id == message_id,
            ProcessingLogEntry.status == ProcessingStatus.COMPLETED,
        )
    )
    return found is not None


def open_entry(
    session: Session,
    *,
    message_id: str,
    from_address: str = "",
    to_address: str = "",
    subject: str = "",
    attachment_count: int = 0,
) -> ProcessingLogEntry | None:
    """
    Start a processing attempt for ``message_id``.

    Returns None when the message is already completed or another attempt is
    still in flight. In-flight attempts older than ``processing_stale_minutes``
    are closed as FAILED first so the message can be retried.
    """
    if is_completed(session, message_id=message_id):
        return None

    now = datetime.now(UTC)
    stale_before = now - timedelta(minutes=settings.processing_stale_minutes)
    stale = session.execute(
        update(ProcessingLogEntry)
        .where(
            ProcessingLogEntry.message_id == message_id,
            ProcessingLogEntry.status == ProcessingStatus.PROCESSING,
            ProcessingLogEntry.updated_at < stale_before,
        )
        .values(
            status=ProcessingStatus.FAILED,
            failure_reason=STALE_REASON,
            finished_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if stale.rowcount:
        log_event(
            logger,
            "intake.entry.stale",
            message_id=message_id,
            stale_count=stale.rowcount,
        )

    in_flight = session.scalar(
        select(ProcessingLogEntry.id).where(
            ProcessingLogEntry.message_id == message_id,
            ProcessingLogEntry.status == ProcessingStatus.PROCESSING,
        )
    )
    if in_flight is not None:
        session.commit()
        return None

    entry = ProcessingLogEntry(
        message_id=message_id,
        from_address=from_address or "",
        to_address=to_address or "",
        subject=subject or "",
        attachment_count=attachment_count,
        processed_count=0,
        status=ProcessingStatus.PROCESSING,
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def complete_entry(
    session: Session,
    entry: ProcessingLogEntry,
    *,
    processed_count: int,
    matched_job_id: uuid.UUID | None = None,
) -> ProcessingLogEntry:
    # Anything flushed for this attempt commits here or is rolled back with it.
    entry.status = ProcessingStatus.COMPLETED
    entry.processed_count = processed_count
    entry.matched_job_id = matched_job_id
    entry.failure_reason = None
    entry.finished_at = datetime.now(UTC)
    session.add(entry)
    try:
        session.commit()
    except IntegrityError:
        # Another attempt completed the same message first.
        session.rollback()
        return fail_entry(session, entry, reason="message already completed by another attempt")
    session.refresh(entry)
    return entry


def fail_entry(session: Session, entry: ProcessingLogEntry, *, reason: str) -> ProcessingLogEntry:
    entry.status = ProcessingStatus.FAILED
    entry.failure_reason = reason[:2000]
    entry.finished_at = datetime.now(UTC)
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def list_entries(
    session: Session,
    *,
    status: ProcessingStatus | None = None,
    message_id: str | None = None,
    limit: int = 100,
) -> list[ProcessingLogEntry]:
    stmt = select(ProcessingLogEntry)
    if status is not None:
        stmt = stmt.where(ProcessingLogEntry.status == status)
    if message_id is not None:
        stmt = stmt.where(ProcessingLogEntry.message_id == message_id)
    stmt = stmt.order_by(ProcessingLogEntry.created_at.desc()).limit(max(1, min(limit, 500)))
    return list(session.scalars(stmt))
