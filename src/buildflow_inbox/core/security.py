from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from passlib.context import CryptContext

from buildflow_inbox.core.config import settings

_ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass(frozen=True)
class TokenClaims:
    reviewer_id: uuid.UUID
    role: str


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(
    *, reviewer_id: uuid.UUID, role: str, expires_minutes: int | None = None
) -> str:
    issued = datetime.now(UTC)
    claims = {
        "sub": str(reviewer_id),
        "role": str(getattr(role, "value", role)),
        "iat": issued,
        "exp": issued + timedelta(minutes=expires_minutes or settings.access_token_exp_minutes),
    }
    return jwt.encode(claims, settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> TokenClaims | None:
    """Return the token's claims, or None when it is forged, expired or malformed."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[_ALGORITHM])
        return TokenClaims(reviewer_id=uuid.UUID(str(payload["sub"])), role=str(payload["role"]))
    except (JWTError, KeyError, ValueError):
        return None
