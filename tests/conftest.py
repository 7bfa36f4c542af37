from __future__ import annotations

import os

import pytest

# Settings and the engine are built at import time, so the environment goes first.
for _key, _value in {
    "ENVIRONMENT": "test",
    "DATABASE_URL": "sqlite:///./.buildflow_inbox_test.db",
    "STORAGE_BACKEND": "local",
    "NOTIFY_SENDERS": "false",
    "EXTRACTION_API_KEY": "",
}.items():
    os.environ.setdefault(_key, _value)


@pytest.fixture(autouse=True)
def fresh_schema(tmp_path, monkeypatch):
    from buildflow_inbox import models  # noqa: F401
    from buildflow_inbox.core import storage
    from buildflow_inbox.core.config import settings
    from buildflow_inbox.core.db import engine
    from buildflow_inbox.core.models import Base

    monkeypatch.setattr(settings, "local_storage_path", tmp_path / "archive")
    monkeypatch.setattr(storage, "_storage", None)

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield
    engine.dispose()
