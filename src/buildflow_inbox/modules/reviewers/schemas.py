from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr

from buildflow_inbox.modules.reviewers.models import ReviewerRole


class ReviewerOut(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str | None
    role: ReviewerRole
    is_active: bool
    last_login_at: datetime | None


class ReviewerCreate(BaseModel):
    email: EmailStr
    password: str
    display_name: str | None = None
    role: ReviewerRole = ReviewerRole.REVIEWER


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
