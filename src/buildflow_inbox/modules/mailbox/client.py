from __future__ import annotations

import imaplib
import mimetypes
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from email import errors as email_errors
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parseaddr, parsedate_to_datetime

from buildflow_inbox.core.config import settings
from buildflow_inbox.core.logging import get_logger, log_event, monotonic_ms

logger = get_logger(__name__)

ALLOWED_MIME_TYPES = frozenset(
    {"application/pdf", "image/jpeg", "image/jpg", "image/png", "image/gif"}
)

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Structural defects that leave the attachment list unreliable.
_FATAL_DEFECTS = (
    email_errors.NoBoundaryInMultipartDefect,
    email_errors.StartBoundaryNotFoundDefect,
    email_errors.MultipartInvariantViolationDefect,
)


class MailboxError(RuntimeError):
    pass


@dataclass(frozen=True)
class RawAttachment:
    filename: str
    mime_type: str
    body: bytes
    size: int


@dataclass(frozen=True)
class RawMessage:
    id: str
    from_address: str
    to_address: str
    subject: str
    date: datetime | None
    attachments: list[RawAttachment] = field(default_factory=list)
    parse_error: str | None = None


def is_processable(mime_type: str | None) -> bool:
    return (mime_type or "").lower() in ALLOWED_MIME_TYPES


def imap_since(day: date) -> str:
    # IMAP dates are locale-independent: 01-Mar-2024
    return f"{day.day:02d}-{_MONTHS[day.month - 1]}-{day.year}"


class MailboxClient:
    """Read-only view of a single IMAP mailbox."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 993,
        username: str,
        password: str,
        use_tls: bool = True,
        mailbox: str = "INBOX",
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.mailbox = mailbox
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> MailboxClient:
        if not settings.imap_host or not settings.imap_username or not settings.imap_password:
            raise MailboxError("Mailbox is not configured (IMAP_HOST/IMAP_USERNAME/IMAP_PASSWORD)")
        return cls(
            host=settings.imap_host,
            port=settings.imap_port,
            username=settings.imap_username,
            password=settings.imap_password,
            use_tls=settings.imap_use_tls,
            mailbox=settings.imap_mailbox,
            timeout=settings.imap_timeout_seconds,
        )

    def _connect(self) -> imaplib.IMAP4:
        if self.use_tls:
            return imaplib.IMAP4_SSL(self.host, self.port, timeout=self.timeout)
        return imaplib.IMAP4(self.host, self.port, timeout=self.timeout)

    def fetch_candidate_messages(self, window_days: int) -> Iterator[RawMessage]:
        """
        Yield messages from the last ``window_days`` days that carry at least one
        processable attachment.

        Single pass over one connection; call again to re-fetch. Messages are read
        with BODY.PEEK so their seen flag is left alone. Any connection, auth or
        protocol failure raises MailboxError and ends the iteration.
        """
        start = time.monotonic()
        since = datetime.now(UTC).date() - timedelta(days=max(0, int(window_days)))
        try:
            conn = self._connect()
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"Could not connect to {self.host}:{self.port}") from e

        yielded = 0
        skipped = 0
        try:
            try:
                conn.login(self.username, self.password)
                typ, _ = conn.select(self.mailbox, readonly=True)
                if typ != "OK":
                    raise MailboxError(f"Could not select mailbox {self.mailbox}")
                typ, data = conn.uid("SEARCH", None, "SINCE", imap_since(since))
                if typ != "OK":
                    raise MailboxError("Mailbox search failed")
                uids = (data[0] or b"").split() if data else []
            except (imaplib.IMAP4.error, OSError) as e:
                raise MailboxError(f"Mailbox session failed: {type(e).__name__}") from e

            log_event(
                logger,
                "mailbox.search.success",
                mailbox=self.mailbox,
                since=since.isoformat(),
                message_count=len(uids),
            )

            for uid in uids:
                raw = self._fetch_one(conn, uid)
                if raw is None:
                    continue
                message = parse_raw_message(raw, fallback_id=f"uid-{uid.decode()}")
                if message.parse_error is None and not any(
                    is_processable(a.mime_type) for a in message.attachments
                ):
                    skipped += 1
                    log_event(
                        logger,
                        "mailbox.message.skipped",
                        message_id=message.id,
                        attachment_count=len(message.attachments),
                        reason="no processable attachments",
                    )
                    continue
                yielded += 1
                yield message
        finally:
            try:
                conn.logout()
            except (imaplib.IMAP4.error, OSError):
                pass
            log_event(
                logger,
                "mailbox.fetch.finish",
                mailbox=self.mailbox,
                yielded=yielded,
                skipped=skipped,
                duration_ms=monotonic_ms(start),
            )

    def _fetch_one(self, conn: imaplib.IMAP4, uid: bytes) -> bytes | None:
        try:
            typ, data = conn.uid("FETCH", uid, "(BODY.PEEK[])")
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"Fetch failed for uid {uid!r}") from e
        if typ != "OK" or not data:
            raise MailboxError(f"Fetch failed for uid {uid!r}")
        for item in data:
            if isinstance(item, tuple) and len(item) >= 2:
                return bytes(item[1])
        # Expunged between SEARCH and FETCH.
        return None


def parse_raw_message(raw: bytes, *, fallback_id: str) -> RawMessage:
    try:
        msg = BytesParser(policy=policy.default).parsebytes(raw)
    except (email_errors.MessageError, ValueError, TypeError, LookupError) as e:
        return RawMessage(
            id=fallback_id,
            from_address="",
            to_address="",
            subject="",
            date=None,
            parse_error=f"Unparseable message: {type(e).__name__}",
        )

    message_id = str(msg.get("message-id") or "").strip() or fallback_id
    from_address = parseaddr(str(msg.get("from") or ""))[1]
    to_address = parseaddr(str(msg.get("to") or ""))[1]
    subject = str(msg.get("subject") or "").strip()
    sent_at = _parse_date(str(msg.get("date") or ""))

    defects = [d for d in msg.defects if isinstance(d, _FATAL_DEFECTS)]
    if defects:
        return RawMessage(
            id=message_id,
            from_address=from_address,
            to_address=to_address,
            subject=subject,
            date=sent_at,
            parse_error=f"Malformed MIME structure: {type(defects[0]).__name__}",
        )

    try:
        attachments = _collect_attachments(msg)
    except (email_errors.MessageError, ValueError, LookupError) as e:
        return RawMessage(
            id=message_id,
            from_address=from_address,
            to_address=to_address,
            subject=subject,
            date=sent_at,
            parse_error=f"Could not decode attachments: {type(e).__name__}",
        )

    return RawMessage(
        id=message_id,
        from_address=from_address,
        to_address=to_address,
        subject=subject,
        date=sent_at,
        attachments=attachments,
    )


def _collect_attachments(msg: EmailMessage) -> list[RawAttachment]:
    out: list[RawAttachment] = []
    for idx, part in enumerate(msg.iter_attachments()):
        payload = part.get_payload(decode=True)
        if not payload:
            continue
        filename = part.get_filename() or f"attachment-{idx + 1}"
        mime_type = (part.get_content_type() or "").lower()
        if mime_type == "application/octet-stream":
            guessed, _ = mimetypes.guess_type(filename)
            mime_type = (guessed or mime_type).lower()
        out.append(
            RawAttachment(filename=filename, mime_type=mime_type, body=payload, size=len(payload))
        )
    return out


def _parse_date(value: str) -> datetime | None:
    if not value.strip():
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
