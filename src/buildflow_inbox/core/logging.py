from __future__ import annotations

import contextvars
import json
import logging
import os
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ROOT_LOGGER = "buildflow_inbox"

# Correlation ids attached to every event emitted while they are bound.
_CONTEXT: dict[str, contextvars.ContextVar[str | None]] = {
    name: contextvars.ContextVar(name, default=None)
    for name in ("request_id", "user_id", "celery_task_id", "intake_run_id")
}

_configured = False


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None) or record.getMessage(),
        }
        payload.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers = [handler]
    root.setLevel(level)
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


@contextmanager
def bind_context(**values: str | None) -> Iterator[None]:
    tokens = [(_CONTEXT[key], _CONTEXT[key].set(value)) for key, value in values.items()]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def set_user_context(user_id: str | None) -> None:
    _CONTEXT["user_id"].set(user_id)


@contextmanager
def intake_run_context(run_id: str | None = None) -> Iterator[str]:
    run_id = run_id or uuid.uuid4().hex[:12]
    with bind_context(intake_run_id=run_id):
        yield run_id


def _event_fields(fields: dict[str, Any]) -> dict[str, Any]:
    bound = {key: var.get() for key, var in _CONTEXT.items()}
    merged = {k: v for k, v in bound.items() if v}
    merged.update({k: v for k, v in fields.items() if v is not None})
    return merged


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": _event_fields(fields)})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": _event_fields(fields)})


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        with bind_context(request_id=request_id, user_id=None):
            start = time.monotonic()
            try:
                response = await call_next(request)
            except Exception:
                log_exception(
                    get_logger(__name__),
                    "http.request.error",
                    method=request.method,
                    path=request.url.path,
                )
                raise
            response.headers["x-request-id"] = request_id
            log_event(
                get_logger(__name__),
                "http.request.finish",
                level=logging.DEBUG,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=monotonic_ms(start),
            )
            return response


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
