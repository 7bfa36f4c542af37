from __future__ import annotations

# isort: off
import buildflow_inbox.models  # noqa: F401
# isort: on

from buildflow_inbox.core.config import settings
from buildflow_inbox.core.db import SessionLocal, engine
from buildflow_inbox.core.logging import get_logger, log_event
from buildflow_inbox.core.models import Base
from buildflow_inbox.modules.reviewers.service import ensure_admins

logger = get_logger(__name__)


def bootstrap() -> None:
    """Prepare a local database and seed admin reviewers from settings."""
    if settings.environment == "dev" and str(settings.database_url).startswith("sqlite"):
        Base.metadata.create_all(engine)

    emails = [e for e in (settings.init_admin_email or "").split(",") if e.strip()]
    if not emails or not settings.init_admin_password:
        return
    with SessionLocal() as session:
        ensure_admins(session, emails=emails, password=settings.init_admin_password)
    log_event(logger, "bootstrap.admins.ensured", count=len(emails))
