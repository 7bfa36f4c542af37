from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from buildflow_inbox.api.deps import current_reviewer
from buildflow_inbox.core.db import db_session
from buildflow_inbox.core.storage import safe_key_segment
from buildflow_inbox.modules.review.schemas import (
    DecisionIn,
    PendingDocumentDetailOut,
    PendingDocumentOut,
)
from buildflow_inbox.modules.review.service import decide, get_document, list_pending
from buildflow_inbox.modules.reviewers.models import Reviewer

# ReviewError subclasses raised below are translated by the app-level handler in main.
router = APIRouter(prefix="/review", tags=["review"])


@router.get("/pending", response_model=list[PendingDocumentOut])
def list_pending_endpoint(
    limit: int = 100,
    session: Session = Depends(db_session),
    _: Reviewer = Depends(current_reviewer),
) -> list[PendingDocumentOut]:
    docs = list_pending(session, limit=limit)
    return [PendingDocumentOut.model_validate(doc, from_attributes=True) for doc in docs]


@router.get("/documents/{document_id}", response_model=PendingDocumentDetailOut)
def get_document_endpoint(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    _: Reviewer = Depends(current_reviewer),
) -> PendingDocumentDetailOut:
    doc = get_document(session, document_id=document_id)
    return PendingDocumentDetailOut.model_validate(doc, from_attributes=True)


@router.get("/documents/{document_id}/attachment")
def get_attachment_endpoint(
    document_id: uuid.UUID,
    session: Session = Depends(db_session),
    _: Reviewer = Depends(current_reviewer),
) -> Response:
    doc = get_document(session, document_id=document_id)
    disposition = f'inline; filename="{safe_key_segment(doc.filename, fallback="document")}"'
    return Response(
        content=doc.raw_attachment,
        media_type=doc.mime_type,
        headers={"Content-Disposition": disposition},
    )


@router.post("/documents/{document_id}/decide", response_model=PendingDocumentDetailOut)
def decide_endpoint(
    document_id: uuid.UUID,
    payload: DecisionIn,
    session: Session = Depends(db_session),
    reviewer: Reviewer = Depends(current_reviewer),
) -> PendingDocumentDetailOut:
    doc = decide(
        session,
        document_id=document_id,
        action=payload.action,
        job_id=payload.job_id,
        category_override=payload.category_override,
        actor=reviewer,
    )
    return PendingDocumentDetailOut.model_validate(doc, from_attributes=True)
