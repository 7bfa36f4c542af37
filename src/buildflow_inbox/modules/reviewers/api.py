from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from buildflow_inbox.api.deps import admin_reviewer, current_reviewer
from buildflow_inbox.core.db import db_session
from buildflow_inbox.core.security import create_access_token
from buildflow_inbox.modules.reviewers.models import Reviewer
from buildflow_inbox.modules.reviewers.schemas import AccessToken, ReviewerCreate, ReviewerOut
from buildflow_inbox.modules.reviewers.service import (
    InvalidCredentials,
    ReviewerExists,
    check_credentials,
    list_reviewers,
    register_reviewer,
)

router = APIRouter(tags=["reviewers"])


@router.post("/auth/token", response_model=AccessToken)
def issue_token(
    form: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(db_session),
) -> AccessToken:
    try:
        reviewer = check_credentials(session, email=form.username, password=form.password)
    except InvalidCredentials as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        ) from e
    token = create_access_token(reviewer_id=reviewer.id, role=reviewer.role)
    return AccessToken(access_token=token)


@router.get("/auth/me", response_model=ReviewerOut)
def whoami(reviewer: Reviewer = Depends(current_reviewer)) -> ReviewerOut:
    return ReviewerOut.model_validate(reviewer, from_attributes=True)


@router.get("/reviewers", response_model=list[ReviewerOut])
def list_reviewers_endpoint(
    session: Session = Depends(db_session),
    _: Reviewer = Depends(admin_reviewer),
) -> list[ReviewerOut]:
    return [ReviewerOut.model_validate(r, from_attributes=True) for r in list_reviewers(session)]


@router.post("/reviewers", response_model=ReviewerOut, status_code=status.HTTP_201_CREATED)
def create_reviewer_endpoint(
    payload: ReviewerCreate,
    session: Session = Depends(db_session),
    _: Reviewer = Depends(admin_reviewer),
) -> ReviewerOut:
    try:
        reviewer = register_reviewer(
            session,
            email=str(payload.email),
            password=payload.password,
            role=payload.role,
            display_name=payload.display_name,
        )
    except ReviewerExists as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Email already exists"
        ) from e
    return ReviewerOut.model_validate(reviewer, from_attributes=True)
