from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from buildflow_inbox.core.logging import get_logger, log_event
from buildflow_inbox.modules.ledger.models import (
    CostCategory,
    Material,
    OtherCost,
    SubTrade,
)
from buildflow_inbox.modules.ledger.service import build_tip_fee, get_job

logger = get_logger(__name__)


class LedgerError(RuntimeError):
    pass


@dataclass(frozen=True)
class CommitFields:
    vendor: str
    amount: Decimal
    description: str
    occurred_on: date | None


def commit_expense(
    session: Session, *, job_id: uuid.UUID, category: CostCategory, fields: CommitFields
) -> uuid.UUID:
    """
    Insert exactly one cost row for ``job_id`` shaped by ``category``.

    Only flushes; the caller owns the transaction. Not idempotent: the review
    state machine guarantees a single call per document.
    """
    if get_job(session, job_id=job_id) is None:
        raise LedgerError(f"Job not found: {job_id}")

    invoice_date = fields.occurred_on.isoformat() if fields.occurred_on else None
    if category == CostCategory.MATERIALS:
        row = Material(
            job_id=job_id,
            description=fields.description,
            supplier=fields.vendor,
            amount=fields.amount,
            invoice_date=invoice_date,
        )
    elif category == CostCategory.SUBTRADES:
        row = SubTrade(
            job_id=job_id,
            trade=fields.vendor,
            contractor=fields.vendor,
            amount=fields.amount,
            invoice_date=invoice_date,
        )
    elif category == CostCategory.TIP_FEES:
        row = build_tip_fee(job_id=job_id, description=fields.description, amount=fields.amount)
    else:
        row = OtherCost(job_id=job_id, description=fields.description, amount=fields.amount)

    session.add(row)
    session.flush()
    log_event(
        logger,
        "ledger.commit.success",
        job_id=str(job_id),
        category=category.value,
        record_id=str(row.id),
        amount=str(fields.amount),
    )
    return row.id
