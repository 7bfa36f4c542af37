from __future__ import annotations

from fastapi import APIRouter

from buildflow_inbox.modules.intake.api import router as intake_router
from buildflow_inbox.modules.ledger.api import router as ledger_router
from buildflow_inbox.modules.review.api import router as review_router
from buildflow_inbox.modules.reviewers.api import router as reviewers_router

router = APIRouter()

for module_router in (reviewers_router, ledger_router, intake_router, review_router):
    router.include_router(module_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
