from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from buildflow_inbox.api.deps import admin_reviewer, current_reviewer
from buildflow_inbox.core.db import db_session
from buildflow_inbox.modules.ledger.schemas import JobCostOut, JobCreate, JobOut
from buildflow_inbox.modules.ledger.service import (
    create_job,
    get_job,
    list_active_jobs,
    list_job_costs,
)
from buildflow_inbox.modules.reviewers.models import Reviewer

router = APIRouter(tags=["ledger"])


@router.get("/jobs", response_model=list[JobOut])
def list_jobs_endpoint(
    session: Session = Depends(db_session),
    _: Reviewer = Depends(current_reviewer),
) -> list[JobOut]:
    return [JobOut.model_validate(j, from_attributes=True) for j in list_active_jobs(session)]


@router.post("/jobs", response_model=JobOut)
def create_job_endpoint(
    payload: JobCreate,
    session: Session = Depends(db_session),
    _: Reviewer = Depends(admin_reviewer),
) -> JobOut:
    job = create_job(
        session,
        job_address=payload.job_address,
        client_name=payload.client_name,
        project_name=payload.project_name,
    )
    return JobOut.model_validate(job, from_attributes=True)


@router.get("/jobs/{job_id}/costs", response_model=list[JobCostOut])
def list_job_costs_endpoint(
    job_id: uuid.UUID,
    session: Session = Depends(db_session),
    _: Reviewer = Depends(current_reviewer),
) -> list[JobCostOut]:
    if get_job(session, job_id=job_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    out: list[JobCostOut] = []
    for category, rows in list_job_costs(session, job_id=job_id).items():
        for row in rows:
            out.append(
                JobCostOut(
                    id=row.id,
                    category=category.value,
                    amount=row.amount,
                    description=getattr(row, "description", None),
                    supplier=getattr(row, "supplier", None),
                    trade=getattr(row, "trade", None),
                    contractor=getattr(row, "contractor", None),
                    invoice_date=getattr(row, "invoice_date", None),
                    cartage_amount=getattr(row, "cartage_amount", None),
                    total_amount=getattr(row, "total_amount", None),
                    created_at=row.created_at,
                )
            )
    return out
