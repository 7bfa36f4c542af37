from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from buildflow_inbox.core.config import settings
from buildflow_inbox.core.logging import get_logger, log_event, log_exception
from buildflow_inbox.modules.audit.service import record_event
from buildflow_inbox.modules.ledger.committer import CommitFields, LedgerError, commit_expense
from buildflow_inbox.modules.ledger.models import CostCategory
from buildflow_inbox.modules.ledger.service import get_job
from buildflow_inbox.modules.review.archive import archive_document
from buildflow_inbox.modules.review.errors import (
    AlreadyResolved,
    CommitFailed,
    DocumentNotFound,
    JobNotFound,
    NoJobSelected,
)
from buildflow_inbox.modules.review.models import (
    PendingDocument,
    ReviewAction,
    ReviewStatus,
    transition,
)
from buildflow_inbox.modules.reviewers.models import Reviewer

logger = get_logger(__name__)


def list_pending(session: Session, *, limit: int = 100) -> list[PendingDocument]:
    return list(
        session.scalars(
            select(PendingDocument)
            .where(PendingDocument.status == ReviewStatus.PENDING)
            .order_by(PendingDocument.created_at, PendingDocument.id)
            .limit(max(1, min(limit, 500)))
        )
    )


def get_document(session: Session, *, document_id: uuid.UUID) -> PendingDocument:
    doc = session.get(PendingDocument, document_id)
    if doc is None:
        raise DocumentNotFound(f"Document not found: {document_id}", document_id=document_id)
    return doc


def approve(
    session: Session,
    *,
    document_id: uuid.UUID,
    job_id: uuid.UUID | None = None,
    category_override: CostCategory | None = None,
    actor: Reviewer | None = None,
) -> PendingDocument:
    """
    Commit a pending document to a job's cost ledger.

    The status flip and the ledger insert share one transaction: either both
    land or the document stays PENDING. Archival runs afterwards and never
    undoes the commit.
    """
    doc = get_document(session, document_id=document_id)
    if doc.status != ReviewStatus.PENDING:
        raise AlreadyResolved(
            f"Document already {doc.status.value.lower()}", document_id=document_id
        )

    effective_job_id = job_id or doc.resolved_job_id
    if effective_job_id is None:
        raise NoJobSelected("Select a job before approving", document_id=document_id)
    if job_id is not None and get_job(session, job_id=job_id) is None:
        raise JobNotFound(f"Job not found: {job_id}", document_id=document_id)
    category = category_override or doc.category
    transition(doc.status, ReviewStatus.APPROVED)

    fields = CommitFields(
        vendor=doc.vendor,
        amount=doc.amount,
        description=doc.description,
        occurred_on=doc.occurred_on,
    )
    actor_id = actor.id if actor else None
    now = datetime.now(UTC)

    try:
        claimed = session.execute(
            update(PendingDocument)
            .where(
                PendingDocument.id == document_id,
                PendingDocument.status == ReviewStatus.PENDING,
            )
            .values(
                status=ReviewStatus.APPROVED,
                committed_job_id=effective_job_id,
                committed_category=category,
                decided_at=now,
                decided_by_reviewer_id=actor_id,
            )
        )
        if not claimed.rowcount:
            session.rollback()
            raise AlreadyResolved("Document already resolved", document_id=document_id)

        record_id = commit_expense(
            session, job_id=effective_job_id, category=category, fields=fields
        )
        session.execute(
            update(PendingDocument)
            .where(PendingDocument.id == document_id)
            .values(committed_record_id=record_id)
        )
        session.commit()
    except (LedgerError, SQLAlchemyError) as e:
        session.rollback()
        log_exception(
            logger,
            "review.approve.failure",
            document_id=str(document_id),
            job_id=str(effective_job_id),
            category=category.value,
        )
        raise CommitFailed(f"Could not commit expense: {e}", document_id=document_id) from e

    session.refresh(doc)
    log_event(
        logger,
        "review.approve.success",
        document_id=str(doc.id),
        job_id=str(effective_job_id),
        category=category.value,
        record_id=str(record_id),
        suggested=effective_job_id == doc.resolved_job_id,
    )

    if settings.archive_on_approval:
        _archive_best_effort(session, doc=doc, job_id=effective_job_id)

    _audit_best_effort(
        session,
        event_type="document.approved",
        document_id=doc.id,
        actor_reviewer_id=actor_id,
        payload={
            "job_id": str(effective_job_id),
            "category": category.value,
            "record_id": str(record_id),
            "category_overridden": category != doc.category,
        },
    )
    return doc


def reject(
    session: Session, *, document_id: uuid.UUID, actor: Reviewer | None = None
) -> PendingDocument:
    doc = get_document(session, document_id=document_id)
    if doc.status != ReviewStatus.PENDING:
        raise AlreadyResolved(
            f"Document already {doc.status.value.lower()}", document_id=document_id
        )
    transition(doc.status, ReviewStatus.REJECTED)

    actor_id = actor.id if actor else None
    result = session.execute(
        update(PendingDocument)
        .where(
            PendingDocument.id == document_id,
            PendingDocument.status == ReviewStatus.PENDING,
        )
        .values(
            status=ReviewStatus.REJECTED,
            decided_at=datetime.now(UTC),
            decided_by_reviewer_id=actor_id,
        )
    )
    if not result.rowcount:
        session.rollback()
        raise AlreadyResolved("Document already resolved", document_id=document_id)
    session.commit()
    session.refresh(doc)

    log_event(logger, "review.reject.success", document_id=str(doc.id))
    _audit_best_effort(
        session,
        event_type="document.rejected",
        document_id=doc.id,
        actor_reviewer_id=actor_id,
        payload={},
    )
    return doc


def decide(
    session: Session,
    *,
    document_id: uuid.UUID,
    action: ReviewAction,
    job_id: uuid.UUID | None = None,
    category_override: CostCategory | None = None,
    actor: Reviewer | None = None,
) -> PendingDocument:
    if action == ReviewAction.APPROVE:
        return approve(
            session,
            document_id=document_id,
            job_id=job_id,
            category_override=category_override,
            actor=actor,
        )
    return reject(session, document_id=document_id, actor=actor)


def _archive_best_effort(session: Session, *, doc: PendingDocument, job_id: uuid.UUID) -> None:
    job = get_job(session, job_id=job_id)
    if job is None:
        return
    try:
        key = archive_document(doc, job)
    except Exception:  # noqa: BLE001
        # Includes backend construction errors; the approval already stands.
        log_exception(
            logger,
            "archive.upload.failure",
            document_id=str(doc.id),
            job_id=str(job_id),
        )
        return
    doc.archive_key = key
    session.add(doc)
    session.commit()
    log_event(
        logger,
        "archive.upload.success",
        document_id=str(doc.id),
        job_id=str(job_id),
        storage_key=key,
    )


def _audit_best_effort(
    session: Session, *, event_type: str, document_id: uuid.UUID, **kwargs
) -> None:
    # The decision is already committed; a lost audit row is logged, not raised.
    try:
        record_event(session, event_type=event_type, document_id=document_id, **kwargs)
    except SQLAlchemyError:
        session.rollback()
        log_exception(
            logger, "audit.record.failure", event_type=event_type, document_id=str(document_id)
        )
