from __future__ import annotations

import smtplib
from datetime import date
from decimal import Decimal

from buildflow_inbox.core.config import settings
from buildflow_inbox.modules.ledger.models import CostCategory
from buildflow_inbox.modules.notifications import service as notifications
from buildflow_inbox.modules.review.models import PendingDocument


def _doc(filename: str = "invoice.pdf") -> PendingDocument:
    return PendingDocument(
        filename=filename,
        mime_type="application/pdf",
        raw_attachment=b"",
        vendor="Acme Hardware",
        amount=Decimal("245.5"),
        category=CostCategory.TIP_FEES,
        description="Skip bin",
        occurred_on=date(2024, 3, 1),
        confidence=0.8,
        raw_extracted_fields={},
        source_subject="Invoice",
        source_from_address="accounts@acme.example",
    )


class FakeSMTP:
    sent: list = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        pass

    def login(self, username, password):
        pass

    def send_message(self, msg):
        FakeSMTP.sent.append(msg)


def test_summary_lists_each_document_and_job():
    msg = notifications.build_summary_message(
        to_address="accounts@acme.example", documents=[_doc()], job_label="12 Spud Street"
    )
    body = msg.get_content()

    assert msg["Subject"] == "Documents received for review - 12 Spud Street"
    assert msg["To"] == "accounts@acme.example"
    assert "* invoice.pdf" in body
    assert "Amount: $245.50" in body
    assert "Category: tip fees" in body
    assert "Suggested job: 12 Spud Street" in body


def test_summary_without_job_asks_reviewer_to_pick():
    msg = notifications.build_summary_message(
        to_address="accounts@acme.example", documents=[_doc()], job_label=None
    )
    assert msg["Subject"] == "Documents received for review"
    assert "No job could be matched" in msg.get_content()


def test_send_is_noop_when_disabled(monkeypatch):
    monkeypatch.setattr(settings, "notify_senders", False)
    assert notifications.send_intake_summary(
        to_address="accounts@acme.example", documents=[_doc()], job_label=None
    ) is False


def test_send_delivers_and_swallows_smtp_errors(monkeypatch):
    monkeypatch.setattr(settings, "notify_senders", True)
    monkeypatch.setattr(settings, "smtp_host", "smtp.builder.example")
    monkeypatch.setattr(FakeSMTP, "sent", [])
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)

    assert notifications.send_intake_summary(
        to_address="accounts@acme.example", documents=[_doc()], job_label=None
    )
    assert len(FakeSMTP.sent) == 1

    def _refuse(self, msg):
        raise smtplib.SMTPRecipientsRefused({"accounts@acme.example": (550, b"no")})

    monkeypatch.setattr(FakeSMTP, "send_message", _refuse)
    assert not notifications.send_intake_summary(
        to_address="accounts@acme.example", documents=[_doc()], job_label=None
    )
    # Nothing to report means nothing is sent.
    assert not notifications.send_intake_summary(
        to_address="accounts@acme.example", documents=[], job_label=None
    )
