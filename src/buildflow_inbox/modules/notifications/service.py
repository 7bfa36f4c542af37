from __future__ import annotations

import smtplib
import ssl
from collections.abc import Sequence
from email.message import EmailMessage

from buildflow_inbox.core.config import settings
from buildflow_inbox.core.logging import get_logger, log_event, log_exception
from buildflow_inbox.modules.review.models import PendingDocument

logger = get_logger(__name__)


def notifications_enabled() -> bool:
    return bool(settings.notify_senders and settings.smtp_host)


def build_summary_message(
    *, to_address: str, documents: Sequence[PendingDocument], job_label: str | None
) -> EmailMessage:
    subject = "Documents received for review"
    if job_label:
        subject += f" - {job_label}"

    lines = ["Your documents have been received and are waiting for review.", ""]
    lines.append("Documents:")
    for doc in documents:
        lines.append("")
        lines.append(f"* {doc.filename}")
        lines.append(f"  Vendor: {doc.vendor}")
        lines.append(f"  Amount: ${doc.amount:.2f}")
        lines.append(f"  Category: {doc.category.value.replace('_', ' ')}")
    lines.append("")
    if job_label:
        lines.append(f"Suggested job: {job_label}")
    else:
        lines.append("No job could be matched. Please pick one when reviewing.")
    lines.append("")
    lines.append(f"Review them at {settings.base_url.rstrip('/')}/api/review/pending")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.smtp_from_email
    msg["To"] = to_address
    msg.set_content("\n".join(lines))
    return msg


def send_intake_summary(
    *, to_address: str, documents: Sequence[PendingDocument], job_label: str | None
) -> bool:
    """Email the sender a summary of staged documents. Failures are logged, never raised."""
    if not notifications_enabled() or not to_address or not documents:
        return False

    msg = build_summary_message(to_address=to_address, documents=documents, job_label=job_label)
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=20) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls(context=ssl.create_default_context())
            if settings.smtp_username and settings.smtp_password:
                smtp.login(settings.smtp_username, settings.smtp_password)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError):
        log_exception(
            logger,
            "notification.send.failure",
            to_address=to_address,
            document_count=len(documents),
        )
        return False

    log_event(
        logger,
        "notification.send.success",
        to_address=to_address,
        document_count=len(documents),
    )
    return True
