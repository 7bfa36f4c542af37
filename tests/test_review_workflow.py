from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from buildflow_inbox.core.db import SessionLocal
from buildflow_inbox.core.storage import StorageError, get_storage
from buildflow_inbox.modules.audit.models import AuditEvent
from buildflow_inbox.modules.ledger.committer import LedgerError
from buildflow_inbox.modules.ledger.models import CostCategory, Material, SubTrade, TipFee
from buildflow_inbox.modules.ledger.service import count_job_costs, create_job
from buildflow_inbox.modules.review import service as review_service
from buildflow_inbox.modules.review.errors import (
    AlreadyResolved,
    CommitFailed,
    DocumentNotFound,
    JobNotFound,
    NoJobSelected,
)
from buildflow_inbox.modules.review.models import (
    IllegalTransition,
    PendingDocument,
    ReviewAction,
    ReviewStatus,
    transition,
)
from buildflow_inbox.modules.reviewers.service import register_reviewer


def _stage(
    session,
    *,
    job_id: uuid.UUID | None = None,
    category: CostCategory = CostCategory.MATERIALS,
    amount: str = "245.50",
) -> PendingDocument:
    doc = PendingDocument(
        filename="invoice.pdf",
        mime_type="application/pdf",
        raw_attachment=b"%PDF-1.4 invoice",
        vendor="Acme Hardware",
        amount=Decimal(amount),
        category=category,
        description="Timber and fixings",
        occurred_on=date(2024, 3, 1),
        confidence=0.9,
        raw_extracted_fields={"vendor": "Acme Hardware"},
        source_subject="Invoice for 12 Spud St",
        source_from_address="accounts@acme.example",
        status=ReviewStatus.PENDING,
        resolved_job_id=job_id,
        resolution_score=100.0 if job_id else None,
    )
    session.add(doc)
    session.commit()
    session.refresh(doc)
    return doc


def test_transition_is_one_way():
    assert transition(ReviewStatus.PENDING, ReviewStatus.APPROVED) == ReviewStatus.APPROVED
    assert transition(ReviewStatus.PENDING, ReviewStatus.REJECTED) == ReviewStatus.REJECTED
    with pytest.raises(IllegalTransition):
        transition(ReviewStatus.APPROVED, ReviewStatus.REJECTED)
    with pytest.raises(IllegalTransition):
        transition(ReviewStatus.REJECTED, ReviewStatus.APPROVED)
    with pytest.raises(IllegalTransition):
        transition(ReviewStatus.PENDING, ReviewStatus.PENDING)


def test_second_approve_fails_and_writes_nothing():
    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        doc = _stage(session, job_id=job.id)

        review_service.approve(session, document_id=doc.id)
        with pytest.raises(AlreadyResolved):
            review_service.approve(session, document_id=doc.id)

        assert count_job_costs(session, job_id=job.id) == 1


def test_approve_without_any_job_is_refused():
    with SessionLocal() as session:
        create_job(session, job_address="12 Spud Street")
        doc = _stage(session)

        with pytest.raises(NoJobSelected):
            review_service.approve(session, document_id=doc.id)

        session.refresh(doc)
        assert doc.status == ReviewStatus.PENDING
        assert session.scalars(select(Material)).all() == []


def test_explicit_job_and_category_override_win():
    with SessionLocal() as session:
        suggested = create_job(session, job_address="12 Spud Street")
        chosen = create_job(session, job_address="4 Wattle Court")
        doc = _stage(session, job_id=suggested.id)

        review_service.approve(
            session,
            document_id=doc.id,
            job_id=chosen.id,
            category_override=CostCategory.SUBTRADES,
        )

        row = session.scalars(select(SubTrade)).one()
        assert row.job_id == chosen.id
        assert row.trade == "Acme Hardware"
        assert row.contractor == "Acme Hardware"
        assert count_job_costs(session, job_id=suggested.id) == 0

        session.refresh(doc)
        assert doc.committed_job_id == chosen.id
        assert doc.committed_category == CostCategory.SUBTRADES
        assert doc.category == CostCategory.MATERIALS


def test_tip_fee_approval_adds_cartage():
    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        doc = _stage(session, job_id=job.id, category=CostCategory.TIP_FEES, amount="100.00")

        review_service.approve(session, document_id=doc.id)

        row = session.scalars(select(TipFee)).one()
        assert row.amount == Decimal("100.00")
        assert row.cartage_amount == Decimal("20.00")
        assert row.total_amount == Decimal("120.00")


def test_reject_is_inert_and_final():
    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        doc = _stage(session, job_id=job.id)

        review_service.reject(session, document_id=doc.id)
        session.refresh(doc)
        assert doc.status == ReviewStatus.REJECTED
        assert doc.decided_at is not None
        assert count_job_costs(session, job_id=job.id) == 0

        with pytest.raises(AlreadyResolved):
            review_service.approve(session, document_id=doc.id)
        with pytest.raises(AlreadyResolved):
            review_service.reject(session, document_id=doc.id)
        assert count_job_costs(session, job_id=job.id) == 0


def test_unknown_document_raises_not_found():
    with SessionLocal() as session:
        with pytest.raises(DocumentNotFound):
            review_service.approve(session, document_id=uuid.uuid4())
        with pytest.raises(DocumentNotFound):
            review_service.reject(session, document_id=uuid.uuid4())


def test_commit_failure_leaves_document_pending(monkeypatch):
    def _boom(*_args, **_kwargs):
        raise LedgerError("ledger unavailable")

    monkeypatch.setattr(review_service, "commit_expense", _boom)

    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        doc = _stage(session, job_id=job.id)

        with pytest.raises(CommitFailed):
            review_service.approve(session, document_id=doc.id)

        session.refresh(doc)
        assert doc.status == ReviewStatus.PENDING
        assert doc.committed_job_id is None
        assert doc.decided_at is None
        doc_id, job_id = doc.id, job.id

    monkeypatch.undo()
    with SessionLocal() as session:
        review_service.approve(session, document_id=doc_id)
        assert count_job_costs(session, job_id=job_id) == 1


def test_deleted_job_cannot_receive_costs():
    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        doc = _stage(session, job_id=job.id)
        job.is_deleted = True
        session.commit()

        with pytest.raises(CommitFailed):
            review_service.approve(session, document_id=doc.id)
        session.refresh(doc)
        assert doc.status == ReviewStatus.PENDING


def test_approval_archives_attachment_under_job_folder():
    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        doc = _stage(session, job_id=job.id)

        review_service.approve(session, document_id=doc.id)
        session.refresh(doc)

        assert doc.archive_key is not None
        assert doc.archive_key.startswith("jobs/12 Spud Street/")
        assert doc.archive_key.endswith("invoice.pdf")
        assert get_storage().get(key=doc.archive_key) == b"%PDF-1.4 invoice"


def test_archive_failure_does_not_undo_approval(monkeypatch):
    def _fail(*_args, **_kwargs):
        raise StorageError("bucket unavailable")

    monkeypatch.setattr(review_service, "archive_document", _fail)

    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        doc = _stage(session, job_id=job.id)

        result = review_service.approve(session, document_id=doc.id)

        assert result.status == ReviewStatus.APPROVED
        assert result.archive_key is None
        assert count_job_costs(session, job_id=job.id) == 1


def test_decisions_are_audited():
    with SessionLocal() as session:
        reviewer = register_reviewer(session, email="reviewer@builder.example", password="pw")
        job = create_job(session, job_address="12 Spud Street")
        approved = _stage(session, job_id=job.id)
        rejected = _stage(session, job_id=job.id)

        review_service.decide(
            session, document_id=approved.id, action=ReviewAction.APPROVE, actor=reviewer
        )
        review_service.decide(
            session, document_id=rejected.id, action=ReviewAction.REJECT, actor=reviewer
        )

        events = session.scalars(select(AuditEvent).order_by(AuditEvent.occurred_at)).all()
        assert [e.event_type for e in events] == ["document.approved", "document.rejected"]
        assert all(e.actor_reviewer_id == reviewer.id for e in events)
        assert events[0].payload_json["job_id"] == str(job.id)
        assert events[0].payload_json["category"] == "materials"


def test_list_pending_only_returns_open_documents():
    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        keep = _stage(session, job_id=job.id)
        done = _stage(session, job_id=job.id)
        review_service.reject(session, document_id=done.id)

        assert [d.id for d in review_service.list_pending(session)] == [keep.id]


def _stage_committed() -> tuple[uuid.UUID, uuid.UUID]:
    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        doc = _stage(session, job_id=job.id)
        return doc.id, job.id


def test_concurrent_approvals_commit_once():
    doc_id, job_id = _stage_committed()

    with SessionLocal() as first, SessionLocal() as second:
        # Both reviewers have the document open while it is still pending.
        assert review_service.get_document(first, document_id=doc_id).status == ReviewStatus.PENDING
        assert (
            review_service.get_document(second, document_id=doc_id).status == ReviewStatus.PENDING
        )

        review_service.approve(first, document_id=doc_id)
        with pytest.raises(AlreadyResolved):
            review_service.approve(second, document_id=doc_id)

    with SessionLocal() as session:
        assert count_job_costs(session, job_id=job_id) == 1
        assert session.get(PendingDocument, doc_id).status == ReviewStatus.APPROVED


def test_reject_racing_approve_leaves_one_outcome():
    approved_id, job_id = _stage_committed()
    with SessionLocal() as session:
        rejected_id = _stage(session, job_id=job_id).id

    with SessionLocal() as first, SessionLocal() as second:
        review_service.get_document(first, document_id=approved_id)
        review_service.get_document(second, document_id=approved_id)
        review_service.approve(first, document_id=approved_id)
        with pytest.raises(AlreadyResolved):
            review_service.reject(second, document_id=approved_id)

        # The other way round: approve loses to a reject that landed first.
        review_service.get_document(first, document_id=rejected_id)
        review_service.reject(second, document_id=rejected_id)
        with pytest.raises(AlreadyResolved):
            review_service.approve(first, document_id=rejected_id)

    with SessionLocal() as session:
        assert count_job_costs(session, job_id=job_id) == 1
        assert session.get(PendingDocument, approved_id).status == ReviewStatus.APPROVED
        assert session.get(PendingDocument, rejected_id).status == ReviewStatus.REJECTED


def test_post_commit_failures_do_not_fail_the_approval(monkeypatch):
    def _misconfigured(*_args, **_kwargs):
        raise ValueError("Invalid endpoint: s3://")

    def _audit_down(*_args, **_kwargs):
        raise SQLAlchemyError("audit_event is locked")

    monkeypatch.setattr(review_service, "archive_document", _misconfigured)
    monkeypatch.setattr(review_service, "record_event", _audit_down)

    with SessionLocal() as session:
        job = create_job(session, job_address="12 Spud Street")
        approved = _stage(session, job_id=job.id)
        rejected = _stage(session, job_id=job.id)

        result = review_service.approve(session, document_id=approved.id)
        assert result.status == ReviewStatus.APPROVED
        assert result.archive_key is None
        assert review_service.reject(session, document_id=rejected.id).status == (
            ReviewStatus.REJECTED
        )
        assert count_job_costs(session, job_id=job.id) == 1
        assert session.scalars(select(AuditEvent)).all() == []


def test_explicit_unknown_or_deleted_job_is_not_found():
    with SessionLocal() as session:
        suggested = create_job(session, job_address="12 Spud Street")
        gone = create_job(session, job_address="4 Wattle Court")
        gone.is_deleted = True
        session.commit()
        doc = _stage(session, job_id=suggested.id)

        for job_id in (uuid.uuid4(), gone.id):
            with pytest.raises(JobNotFound) as excinfo:
                review_service.approve(session, document_id=doc.id, job_id=job_id)
            assert excinfo.value.status_code == 404

        session.refresh(doc)
        assert doc.status == ReviewStatus.PENDING
        assert count_job_costs(session, job_id=suggested.id) == 0
