from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from buildflow_inbox.modules.audit.models import AuditEvent


def record_event(
    session: Session,
    *,
    event_type: str,
    document_id: uuid.UUID | None = None,
    actor_reviewer_id: uuid.UUID | None = None,
    payload: dict[str, Any] | None = None,
) -> AuditEvent:
    event = AuditEvent(
        document_id=document_id,
        actor_reviewer_id=actor_reviewer_id,
        event_type=event_type,
        payload_json=dict(payload or {}),
    )
    session.add(event)
    session.commit()
    return event


def list_document_events(session: Session, *, document_id: uuid.UUID) -> list[AuditEvent]:
    return list(
        session.scalars(
            select(AuditEvent)
            .where(AuditEvent.document_id == document_id)
            .order_by(AuditEvent.occurred_at)
        )
    )
