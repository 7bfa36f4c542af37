from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from buildflow_inbox.modules.intake.models import ProcessingStatus


class ProcessingLogEntryOut(BaseModel):
    id: uuid.UUID
    message_id: str
    from_address: str
    to_address: str
    subject: str
    attachment_count: int
    processed_count: int
    status: ProcessingStatus
    failure_reason: str | None
    matched_job_id: uuid.UUID | None
    created_at: datetime
    finished_at: datetime | None


class IntakeRunIn(BaseModel):
    window_days: int | None = Field(default=None, ge=0, le=365)


class IntakeRunOut(BaseModel):
    celery_task_id: str | None
    status: str


class InboundAttachmentIn(BaseModel):
    filename: str
    mime_type: str
    content_base64: str


class InboundMessageIn(BaseModel):
    message_id: str = Field(min_length=1, max_length=998)
    from_address: str = ""
    to_address: str = ""
    subject: str = ""
    attachments: list[InboundAttachmentIn] = Field(default_factory=list)


class InboundMessageOut(BaseModel):
    message_id: str
    skipped: bool
    entry: ProcessingLogEntryOut | None
    document_ids: list[uuid.UUID]
    extraction_failures: int
