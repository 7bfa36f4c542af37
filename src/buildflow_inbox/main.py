from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from buildflow_inbox.api.router import router as api_router
from buildflow_inbox.bootstrap import bootstrap
from buildflow_inbox.core.config import settings
from buildflow_inbox.core.logging import RequestContextMiddleware, configure_logging
from buildflow_inbox.modules.review.errors import ReviewError


@asynccontextmanager
async def _lifespan(_: FastAPI):
    configure_logging()
    bootstrap()
    yield


async def _review_error_handler(_: Request, exc: ReviewError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    app = FastAPI(title="BuildFlow Inbox", version="0.1.0", lifespan=_lifespan)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_exception_handler(ReviewError, _review_error_handler)
    app.include_router(api_router)
    return app


app = create_app()
