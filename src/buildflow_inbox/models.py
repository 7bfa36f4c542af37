"""Registers every mapped class on ``Base.metadata`` for Alembic and ``create_all``."""

from __future__ import annotations

# Reviewer and Job are referenced by string from the review and audit models.
from buildflow_inbox.modules.reviewers.models import Reviewer  # noqa: F401
from buildflow_inbox.modules.ledger.models import (  # noqa: F401
    Job,
    Material,
    OtherCost,
    SubTrade,
    TipFee,
)

from buildflow_inbox.modules.audit.models import AuditEvent  # noqa: F401
from buildflow_inbox.modules.intake.models import ProcessingLogEntry  # noqa: F401
from buildflow_inbox.modules.review.models import PendingDocument  # noqa: F401
