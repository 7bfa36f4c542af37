from __future__ import annotations

from buildflow_inbox.core.storage import get_storage, safe_key_segment
from buildflow_inbox.modules.ledger.models import Job
from buildflow_inbox.modules.ledger.service import job_folder_name
from buildflow_inbox.modules.review.models import PendingDocument


def archive_key_for(document: PendingDocument, job: Job) -> str:
    folder = safe_key_segment(job_folder_name(job), fallback=str(job.id))
    filename = safe_key_segment(document.filename, fallback="document")
    # Same filename can arrive twice for one job; prefix keeps both.
    return f"jobs/{folder}/{document.id.hex[:8]}-{filename}"


def archive_document(document: PendingDocument, job: Job) -> str:
    """Copy the original attachment into the job's folder. Raises StorageError."""
    key = archive_key_for(document, job)
    get_storage().put(key=key, body=document.raw_attachment, content_type=document.mime_type)
    return key
