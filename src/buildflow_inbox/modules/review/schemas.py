from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from buildflow_inbox.modules.ledger.models import CostCategory
from buildflow_inbox.modules.review.models import ReviewAction, ReviewStatus


class PendingDocumentOut(BaseModel):
    id: uuid.UUID
    processing_log_id: uuid.UUID | None
    filename: str
    mime_type: str
    vendor: str
    amount: Decimal
    category: CostCategory
    description: str
    occurred_on: date
    confidence: float
    source_subject: str
    source_from_address: str
    status: ReviewStatus
    resolved_job_id: uuid.UUID | None
    resolution_score: float | None
    created_at: datetime


class PendingDocumentDetailOut(PendingDocumentOut):
    raw_extracted_fields: dict
    committed_job_id: uuid.UUID | None
    committed_category: CostCategory | None
    committed_record_id: uuid.UUID | None
    decided_at: datetime | None
    decided_by_reviewer_id: uuid.UUID | None
    archive_key: str | None


class DecisionIn(BaseModel):
    action: ReviewAction
    job_id: uuid.UUID | None = None
    category_override: CostCategory | None = None
