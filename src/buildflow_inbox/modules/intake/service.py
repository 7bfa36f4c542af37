from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from buildflow_inbox.core.config import settings
from buildflow_inbox.core.db import SessionLocal
from buildflow_inbox.core.logging import (
    get_logger,
    intake_run_context,
    log_event,
    log_exception,
    monotonic_ms,
)
from buildflow_inbox.modules.extraction.gateway import ExtractionError, extract_document
from buildflow_inbox.modules.intake.ledger import complete_entry, fail_entry, open_entry
from buildflow_inbox.modules.intake.models import ProcessingLogEntry, ProcessingStatus
from buildflow_inbox.modules.ledger.models import Job
from buildflow_inbox.modules.ledger.service import job_candidates, list_active_jobs
from buildflow_inbox.modules.mailbox.client import (
    MailboxClient,
    RawAttachment,
    RawMessage,
    is_processable,
)
from buildflow_inbox.modules.notifications.service import send_intake_summary
from buildflow_inbox.modules.resolution.resolver import (
    ResolutionCandidate,
    extract_job_reference,
    resolve,
)
from buildflow_inbox.modules.review.models import PendingDocument, ReviewStatus

logger = get_logger(__name__)


@dataclass
class MessageOutcome:
    message_id: str
    entry: ProcessingLogEntry | None = None
    documents: list[PendingDocument] = field(default_factory=list)
    extraction_failures: int = 0
    skipped_reason: str | None = None


@dataclass
class IntakeSummary:
    run_id: str
    messages_seen: int = 0
    messages_skipped: int = 0
    messages_completed: int = 0
    messages_failed: int = 0
    documents_created: int = 0
    extraction_failures: int = 0

    def add(self, outcome: MessageOutcome) -> None:
        self.messages_seen += 1
        self.documents_created += len(outcome.documents)
        self.extraction_failures += outcome.extraction_failures
        if outcome.entry is None:
            self.messages_skipped += 1
        elif outcome.entry.status == ProcessingStatus.FAILED:
            self.messages_failed += 1
        else:
            self.messages_completed += 1


def run_intake(
    *, window_days: int | None = None, client: MailboxClient | None = None
) -> IntakeSummary:
    """
    One intake pass over the mailbox.

    Messages are handled one at a time and each outcome is committed before
    the next is fetched. MailboxError aborts the run and propagates.
    """
    window = settings.intake_window_days if window_days is None else window_days
    with intake_run_context() as run_id:
        start = time.monotonic()
        summary = IntakeSummary(run_id=run_id)
        log_event(logger, "intake.run.start", window_days=window)
        client = client or MailboxClient.from_settings()
        try:
            with SessionLocal() as session:
                for message in client.fetch_candidate_messages(window):
                    summary.add(process_message(session, message))
        except Exception:
            log_exception(
                logger,
                "intake.run.failure",
                messages_seen=summary.messages_seen,
                duration_ms=monotonic_ms(start),
            )
            raise
        log_event(
            logger,
            "intake.run.finish",
            messages_seen=summary.messages_seen,
            messages_skipped=summary.messages_skipped,
            messages_completed=summary.messages_completed,
            messages_failed=summary.messages_failed,
            documents_created=summary.documents_created,
            extraction_failures=summary.extraction_failures,
            duration_ms=monotonic_ms(start),
        )
        return summary


def process_message(session: Session, message: RawMessage) -> MessageOutcome:
    """Stage every processable attachment; documents commit only with the COMPLETED entry."""
    outcome = MessageOutcome(message_id=message.id)
    entry = open_entry(
        session,
        message_id=message.id,
        from_address=message.from_address,
        to_address=message.to_address,
        subject=message.subject,
        attachment_count=len(message.attachments),
    )
    if entry is None:
        outcome.skipped_reason = "already processed or in progress"
        log_event(
            logger,
            "intake.message.skipped",
            message_id=message.id,
            reason=outcome.skipped_reason,
        )
        return outcome
    outcome.entry = entry

    if message.parse_error:
        outcome.entry = fail_entry(session, entry, reason=message.parse_error)
        log_event(
            logger,
            "intake.message.failed",
            message_id=message.id,
            reason=message.parse_error,
        )
        return outcome

    start = time.monotonic()
    try:
        job, match = _match_job(session, message.subject)
        for attachment in message.attachments:
            if not is_processable(attachment.mime_type):
                log_event(
                    logger,
                    "intake.attachment.skipped",
                    message_id=message.id,
                    filename=attachment.filename,
                    mime_type=attachment.mime_type,
                )
                continue
            doc = _stage_attachment(
                session, entry=entry, message=message, attachment=attachment, job=job, match=match
            )
            if doc is None:
                outcome.extraction_failures += 1
            else:
                outcome.documents.append(doc)

        outcome.entry = complete_entry(
            session,
            entry,
            processed_count=len(outcome.documents),
            matched_job_id=job.id if job else None,
        )
    except Exception as e:  # noqa: BLE001
        session.rollback()
        log_exception(logger, "intake.message.error", message_id=message.id)
        outcome.documents = []
        outcome.entry = fail_entry(session, entry, reason=f"{type(e).__name__}: {e}")
        return outcome

    if outcome.entry.status != ProcessingStatus.COMPLETED:
        # Lost the completion race; the staged documents were rolled back with it.
        outcome.documents = []
        log_event(
            logger,
            "intake.message.superseded",
            message_id=message.id,
            reason=outcome.entry.failure_reason,
        )
        return outcome

    log_event(
        logger,
        "intake.message.completed",
        message_id=message.id,
        attachment_count=len(message.attachments),
        processed_count=len(outcome.documents),
        extraction_failures=outcome.extraction_failures,
        matched_job_id=str(job.id) if job else None,
        match_score=match.score if match else None,
        duration_ms=monotonic_ms(start),
    )

    if outcome.documents:
        send_intake_summary(
            to_address=message.from_address,
            documents=outcome.documents,
            job_label=job.job_address if job else None,
        )
    return outcome


def submit_message(session: Session, message: RawMessage) -> MessageOutcome:
    """Run one pushed message through the same path as a mailbox poll."""
    with intake_run_context():
        return process_message(session, message)


def _match_job(session: Session, subject: str) -> tuple[Job | None, ResolutionCandidate | None]:
    reference = extract_job_reference(subject)
    if not reference:
        return None, None
    jobs = list_active_jobs(session)
    match = resolve(reference, job_candidates(jobs), settings.job_match_threshold)
    if match is None:
        log_event(logger, "resolution.job.miss", reference=reference, candidate_count=len(jobs))
        return None, None
    job_id = uuid.UUID(match.candidate_id)
    job = next((j for j in jobs if j.id == job_id), None)
    log_event(
        logger,
        "resolution.job.match",
        reference=reference,
        job_id=match.candidate_id,
        label=match.candidate_label,
        score=match.score,
    )
    return job, match


def _stage_attachment(
    session: Session,
    *,
    entry: ProcessingLogEntry,
    message: RawMessage,
    attachment: RawAttachment,
    job: Job | None,
    match: ResolutionCandidate | None,
) -> PendingDocument | None:
    try:
        fields = extract_document(
            attachment.body,
            attachment.mime_type,
            filename=attachment.filename,
            hint=message.subject,
        )
    except ExtractionError as e:
        log_event(
            logger,
            "intake.attachment.failure",
            message_id=message.id,
            filename=attachment.filename,
            mime_type=attachment.mime_type,
            error=str(e),
        )
        return None

    doc = PendingDocument(
        processing_log_id=entry.id,
        filename=attachment.filename,
        mime_type=attachment.mime_type,
        raw_attachment=attachment.body,
        vendor=fields.vendor,
        amount=fields.amount,
        category=fields.category,
        description=fields.description,
        occurred_on=fields.occurred_on,
        confidence=fields.confidence,
        raw_extracted_fields=fields.raw,
        source_subject=message.subject,
        source_from_address=message.from_address,
        status=ReviewStatus.PENDING,
        resolved_job_id=job.id if job else None,
        resolution_score=match.score if match else None,
    )
    session.add(doc)
    session.flush()
    log_event(
        logger,
        "intake.document.staged",
        message_id=message.id,
        document_id=str(doc.id),
        filename=doc.filename,
        category=doc.category.value,
        confidence=doc.confidence,
    )
    return doc
