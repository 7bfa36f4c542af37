from __future__ import annotations

import base64
import binascii

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from buildflow_inbox.api.deps import admin_reviewer, current_reviewer
from buildflow_inbox.core.db import db_session
from buildflow_inbox.core.logging import get_logger, log_event
from buildflow_inbox.modules.intake.ledger import list_entries
from buildflow_inbox.modules.intake.models import ProcessingStatus
from buildflow_inbox.modules.intake.schemas import (
    InboundMessageIn,
    InboundMessageOut,
    IntakeRunIn,
    IntakeRunOut,
    ProcessingLogEntryOut,
)
from buildflow_inbox.modules.intake.service import submit_message
from buildflow_inbox.modules.mailbox.client import RawAttachment, RawMessage
from buildflow_inbox.modules.reviewers.models import Reviewer
from buildflow_inbox.worker.tasks import run_intake_task

router = APIRouter(tags=["intake"])
logger = get_logger(__name__)


@router.post("/intake/run", response_model=IntakeRunOut)
def trigger_intake(
    payload: IntakeRunIn | None = None,
    _: Reviewer = Depends(admin_reviewer),
) -> IntakeRunOut:
    window_days = payload.window_days if payload else None
    async_result = run_intake_task.delay(window_days)
    log_event(
        logger,
        "celery.task.enqueued",
        task_name="run_intake",
        celery_task_id=async_result.id,
        window_days=window_days,
    )
    return IntakeRunOut(celery_task_id=async_result.id, status="queued")


@router.post("/intake/messages", response_model=InboundMessageOut)
def push_message(
    payload: InboundMessageIn,
    session: Session = Depends(db_session),
    _: Reviewer = Depends(admin_reviewer),
) -> InboundMessageOut:
    attachments: list[RawAttachment] = []
    for item in payload.attachments:
        try:
            body = base64.b64decode(item.content_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Attachment {item.filename!r} is not valid base64",
            ) from e
        attachments.append(
            RawAttachment(
                filename=item.filename,
                mime_type=item.mime_type.lower(),
                body=body,
                size=len(body),
            )
        )

    message = RawMessage(
        id=payload.message_id,
        from_address=payload.from_address,
        to_address=payload.to_address,
        subject=payload.subject,
        date=None,
        attachments=attachments,
    )
    log_event(
        logger,
        "intake.message.received",
        message_id=message.id,
        attachment_count=len(attachments),
    )
    outcome = submit_message(session, message)
    return InboundMessageOut(
        message_id=outcome.message_id,
        skipped=outcome.entry is None,
        entry=(
            ProcessingLogEntryOut.model_validate(outcome.entry, from_attributes=True)
            if outcome.entry
            else None
        ),
        document_ids=[doc.id for doc in outcome.documents],
        extraction_failures=outcome.extraction_failures,
    )


@router.get("/intake/logs", response_model=list[ProcessingLogEntryOut])
def list_logs(
    status_filter: ProcessingStatus | None = Query(default=None, alias="status"),
    message_id: str | None = None,
    limit: int = 100,
    session: Session = Depends(db_session),
    _: Reviewer = Depends(current_reviewer),
) -> list[ProcessingLogEntryOut]:
    entries = list_entries(session, status=status_filter, message_id=message_id, limit=limit)
    return [ProcessingLogEntryOut.model_validate(e, from_attributes=True) for e in entries]
