"""Document archive backends.

Approved attachments are copied under ``jobs/<folder>/...``. The local backend
writes below ``LOCAL_STORAGE_PATH``; the S3 backend targets any S3-compatible
bucket (AWS, MinIO, R2).
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from buildflow_inbox.core.config import settings
from buildflow_inbox.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_CODES = frozenset(
    {"RequestTimeout", "SlowDown", "Throttling", "ThrottlingException", "ServiceUnavailable"}
)
_MAX_ATTEMPTS = 3


class StorageError(RuntimeError):
    pass


def _is_transient(error: Exception) -> bool:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code") in _TRANSIENT_CODES
    return isinstance(error, BotoCoreError)


def _with_retries(op: str, key: str, call: Callable[[], T]) -> T:
    delay = 0.25
    for attempt in range(1, _MAX_ATTEMPTS + 1):
        try:
            return call()
        except (BotoCoreError, ClientError) as e:
            if attempt == _MAX_ATTEMPTS or not _is_transient(e):
                log_exception(logger, f"storage.{op}.failure", storage_key=key, attempt=attempt)
                raise StorageError(f"{op} failed for {key}") from e
            log_event(
                logger,
                f"storage.{op}.retry",
                storage_key=key,
                attempt=attempt,
                error_type=type(e).__name__,
            )
            time.sleep(delay)
            delay *= 2
    raise AssertionError("unreachable")


class ArchiveStore:
    backend = "none"

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> str:
        raise NotImplementedError

    def get(self, *, key: str) -> bytes:
        raise NotImplementedError


class LocalArchiveStore(ArchiveStore):
    backend = "local"

    def __init__(self, root: Path):
        self.root = root.resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise StorageError(f"Key escapes archive root: {key}")
        return path

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> str:
        start = time.monotonic()
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
        except OSError as e:
            raise StorageError(f"Could not write {key}: {e}") from e
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return key

    def get(self, *, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"Object not found: {key}") from e


class S3ArchiveStore(ArchiveStore):
    backend = "s3"

    def __init__(self) -> None:
        region = settings.s3_region
        if not region or region.lower() == "auto":
            region = "us-east-1"
        self._bucket = settings.s3_bucket
        self._client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url or None,
            region_name=region,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            config=Config(connect_timeout=30, read_timeout=60, retries={"mode": "standard"}),
        )

    def put(self, *, key: str, body: bytes, content_type: str | None = None) -> str:
        start = time.monotonic()
        extra = {"ContentType": content_type} if content_type else {}
        _with_retries(
            "put",
            key,
            lambda: self._client.put_object(Bucket=self._bucket, Key=key, Body=body, **extra),
        )
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return key

    def get(self, *, key: str) -> bytes:
        response = _with_retries(
            "get", key, lambda: self._client.get_object(Bucket=self._bucket, Key=key)
        )
        return response["Body"].read()


_storage: ArchiveStore | None = None


def get_storage() -> ArchiveStore:
    global _storage  # noqa: PLW0603
    if _storage is None:
        if settings.storage_backend == "s3":
            _storage = S3ArchiveStore()
        else:
            _storage = LocalArchiveStore(Path(settings.local_storage_path))
    return _storage


def safe_key_segment(value: str, *, fallback: str) -> str:
    """Reduce a job folder name or filename to a single safe key segment."""
    name = value.replace("\\", "/").rsplit("/", 1)[-1]
    name = re.sub(r"[^A-Za-z0-9._ -]+", "", name)
    name = " ".join(name.split()).strip(" .")
    return name[:120] or fallback
