from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from buildflow_inbox.core.models import Base, Timestamped, UUIDPrimaryKey


class ReviewerRole(str, enum.Enum):
    REVIEWER = "REVIEWER"
    ADMIN = "ADMIN"


class Reviewer(UUIDPrimaryKey, Timestamped, Base):
    """A person allowed to approve or reject staged documents."""

    __tablename__ = "reviewer_account"

    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(200))
    role: Mapped[ReviewerRole] = mapped_column(Enum(ReviewerRole, native_enum=False))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ReviewerRole.ADMIN
