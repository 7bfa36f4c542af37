from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    LargeBinary,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buildflow_inbox.core.models import Base, Timestamped, UUIDPrimaryKey
from buildflow_inbox.modules.ledger.models import CostCategory


class ReviewStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class IllegalTransition(ValueError):
    pass


_ALLOWED_TRANSITIONS: dict[ReviewStatus, frozenset[ReviewStatus]] = {
    ReviewStatus.PENDING: frozenset({ReviewStatus.APPROVED, ReviewStatus.REJECTED}),
    ReviewStatus.APPROVED: frozenset(),
    ReviewStatus.REJECTED: frozenset(),
}


def transition(current: ReviewStatus, target: ReviewStatus) -> ReviewStatus:
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise IllegalTransition(f"{current.value} -> {target.value}")
    return target


class PendingDocument(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "review_pending_document"

    processing_log_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("intake_processing_log.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    filename: Mapped[str] = mapped_column(String(512))
    mime_type: Mapped[str] = mapped_column(String(200))
    raw_attachment: Mapped[bytes] = mapped_column(LargeBinary, deferred=True)

    vendor: Mapped[str] = mapped_column(String(200))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    category: Mapped[CostCategory] = mapped_column(
        Enum(CostCategory, native_enum=False, values_callable=lambda e: [m.value for m in e])
    )
    description: Mapped[str] = mapped_column(Text)
    occurred_on: Mapped[date] = mapped_column(Date)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    raw_extracted_fields: Mapped[dict] = mapped_column(JSON, default=dict)

    source_subject: Mapped[str] = mapped_column(Text, default="")
    source_from_address: Mapped[str] = mapped_column(String(320), default="")

    status: Mapped[ReviewStatus] = mapped_column(
        Enum(ReviewStatus, native_enum=False), index=True, default=ReviewStatus.PENDING
    )

    resolved_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("ledger_job.id", ondelete="SET NULL"), nullable=True
    )
    resolution_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    committed_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("ledger_job.id", ondelete="SET NULL"), nullable=True
    )
    committed_category: Mapped[CostCategory | None] = mapped_column(
        Enum(CostCategory, native_enum=False, values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    committed_record_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), nullable=True
    )
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_by_reviewer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("reviewer_account.id"), nullable=True
    )
    archive_key: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    processing_log = relationship("ProcessingLogEntry")
    resolved_job = relationship("Job", foreign_keys=[resolved_job_id])
    committed_job = relationship("Job", foreign_keys=[committed_job_id])
    decided_by = relationship("Reviewer")


class ReviewAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
