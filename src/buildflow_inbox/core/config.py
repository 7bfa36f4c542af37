from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"
    cors_origins: list[str] = ["*"]

    database_url: str = "sqlite:///./buildflow_inbox.db"
    redis_url: str = "redis://localhost:6379/0"

    # Inbound mailbox (single mailbox, single processing identity).
    imap_host: str | None = None
    imap_port: int = 993
    imap_username: str | None = None
    imap_password: str | None = None
    imap_use_tls: bool = True
    imap_mailbox: str = "INBOX"
    imap_timeout_seconds: float = 30.0
    intake_window_days: int = 7
    intake_poll_minutes: int | None = None

    # A PROCESSING log entry older than this is treated as FAILED on next observation.
    processing_stale_minutes: int = 30

    extraction_base_url: str = "https://api.openai.com/v1"
    extraction_api_key: str | None = None
    extraction_model: str = "gpt-4o-mini"
    extraction_timeout_seconds: float = 60.0
    extraction_max_text_chars: int = 12000

    job_match_threshold: int = 90

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")
    archive_on_approval: bool = True

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "buildflow-inbox"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    notify_senders: bool = False
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    smtp_from_email: str = "noreply@example.com"

    init_admin_email: str | None = None
    init_admin_password: str | None = None

    access_token_exp_minutes: int = 60 * 24


settings = Settings()
