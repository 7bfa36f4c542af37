from __future__ import annotations

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from buildflow_inbox.core.db import db_session
from buildflow_inbox.core.logging import set_user_context
from buildflow_inbox.core.security import decode_access_token
from buildflow_inbox.modules.reviewers.models import Reviewer

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def current_reviewer(
    token: str | None = Depends(oauth2_scheme),
    session: Session = Depends(db_session),
) -> Reviewer:
    if not token:
        raise _unauthorized("Not authenticated")
    claims = decode_access_token(token)
    if claims is None:
        raise _unauthorized("Invalid token")
    reviewer = session.get(Reviewer, claims.reviewer_id)
    if reviewer is None or not reviewer.is_active:
        raise _unauthorized("Invalid reviewer")
    set_user_context(str(reviewer.id))
    return reviewer


def admin_reviewer(reviewer: Reviewer = Depends(current_reviewer)) -> Reviewer:
    # Role is re-read from the database; the token claim is informational only.
    if not reviewer.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return reviewer
