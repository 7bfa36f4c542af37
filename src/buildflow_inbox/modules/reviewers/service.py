from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from buildflow_inbox.core.security import hash_password, verify_password
from buildflow_inbox.modules.reviewers.models import Reviewer, ReviewerRole


class ReviewerExists(ValueError):
    pass


class InvalidCredentials(ValueError):
    pass


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def find_reviewer(session: Session, *, email: str) -> Reviewer | None:
    return session.scalar(select(Reviewer).where(Reviewer.email == _normalize_email(email)))


def list_reviewers(session: Session) -> list[Reviewer]:
    return list(session.scalars(select(Reviewer).order_by(Reviewer.email)))


def register_reviewer(
    session: Session,
    *,
    email: str,
    password: str,
    role: ReviewerRole = ReviewerRole.REVIEWER,
    display_name: str | None = None,
) -> Reviewer:
    if find_reviewer(session, email=email) is not None:
        raise ReviewerExists(email)
    reviewer = Reviewer(
        email=_normalize_email(email),
        display_name=display_name,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    session.add(reviewer)
    session.commit()
    session.refresh(reviewer)
    return reviewer


def check_credentials(session: Session, *, email: str, password: str) -> Reviewer:
    reviewer = find_reviewer(session, email=email)
    if reviewer is None or not reviewer.is_active:
        raise InvalidCredentials(email)
    if not verify_password(password, reviewer.password_hash):
        raise InvalidCredentials(email)
    reviewer.last_login_at = datetime.now(UTC)
    session.commit()
    return reviewer


def ensure_admins(session: Session, *, emails: Iterable[str], password: str) -> None:
    """Create missing admin accounts and promote existing ones."""
    for email in emails:
        existing = find_reviewer(session, email=email)
        if existing is None:
            register_reviewer(
                session,
                email=email,
                password=password,
                role=ReviewerRole.ADMIN,
                display_name="Admin",
            )
        elif not existing.is_admin:
            existing.role = ReviewerRole.ADMIN
            session.commit()
