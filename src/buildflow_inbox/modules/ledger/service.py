from __future__ import annotations

import uuid
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from buildflow_inbox.modules.ledger.models import COST_MODELS, CostCategory, Job, TipFee
from buildflow_inbox.modules.resolution.resolver import Candidate

TIP_FEE_CARTAGE_RATE = Decimal("0.20")


def create_job(
    session: Session,
    *,
    job_address: str,
    client_name: str | None = None,
    project_name: str | None = None,
) -> Job:
    job = Job(job_address=job_address.strip(), client_name=client_name, project_name=project_name)
    session.add(job)
    session.commit()
    session.refresh(job)
    return job


def get_job(session: Session, *, job_id: uuid.UUID) -> Job | None:
    return session.scalar(select(Job).where(Job.id == job_id, Job.is_deleted.is_(False)))


def list_active_jobs(session: Session) -> list[Job]:
    return list(
        session.scalars(
            select(Job).where(Job.is_deleted.is_(False)).order_by(Job.created_at, Job.id)
        )
    )


def job_candidates(jobs: list[Job]) -> list[Candidate]:
    """Labels a subject line may refer to a job by, most specific first."""
    out: list[Candidate] = []
    for job in jobs:
        labels = [
            job.job_address,
            job.client_name,
            job.project_name,
            f"{job.client_name} {job.job_address}" if job.client_name else None,
            f"{job.project_name} {job.job_address}" if job.project_name else None,
        ]
        out.append(Candidate(id=str(job.id), labels=[lb for lb in labels if lb and lb.strip()]))
    return out


def job_folder_name(job: Job) -> str:
    return job.job_address.strip() or str(job.id)


def tip_fee_amounts(amount: Decimal) -> tuple[Decimal, Decimal]:
    cartage = (amount * TIP_FEE_CARTAGE_RATE).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return cartage, amount + cartage


def list_job_costs(session: Session, *, job_id: uuid.UUID) -> dict[CostCategory, list]:
    return {
        category: list(
            session.scalars(
                select(model).where(model.job_id == job_id).order_by(model.created_at)
            )
        )
        for category, model in COST_MODELS.items()
    }


def count_job_costs(session: Session, *, job_id: uuid.UUID) -> int:
    return sum(len(rows) for rows in list_job_costs(session, job_id=job_id).values())


def build_tip_fee(*, job_id: uuid.UUID, description: str, amount: Decimal) -> TipFee:
    cartage, total = tip_fee_amounts(amount)
    return TipFee(
        job_id=job_id,
        description=description,
        amount=amount,
        cartage_amount=cartage,
        total_amount=total,
    )
