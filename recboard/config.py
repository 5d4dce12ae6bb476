# SPDX-License-Identifier: Apache-2.0
"""All configuration via environment variables (12-factor). No hardcoded values."""
from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="sqlite:///./recboard.db", description="Database URL")

    # Blob storage
    upload_dir: str = Field(default="./uploads", description="Base directory for protocol documents")
    max_upload_size_mb: int = Field(default=50, ge=1, le=2000, description="Max upload size in MB")

    # Security: required in production; set in .env
    secret_key: str = Field(default="dev-secret-key-change-in-production", min_length=16)

    # CORS
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Outbound email (log-only when smtp_host is unset)
    app_base_url: str = Field(default="http://localhost:3000", description="Base URL for deep links in emails")
    smtp_host: str | None = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_user: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None, description="SMTP password (never commit)")
    smtp_use_tls: bool = Field(default=True)
    smtp_sender: str = Field(default="rec-noreply@localhost", description="From address")

    # Review deadlines (days)
    review_days_exempt: int = Field(default=7, ge=1)
    review_days_expedited: int = Field(default=14, ge=1)
    review_days_full: int = Field(default=30, ge=1)
    reassignment_days: int = Field(default=14, ge=1)

    # Preview cache
    preview_cache_size: int = Field(default=128, ge=1, description="Max cached extracted entries")
    preview_cache_ttl_seconds: int = Field(default=600, ge=1)

    # Concurrency diagnostics
    stale_write_threshold_seconds: int = Field(
        default=30,
        ge=0,
        description="Warn when a write is based on a snapshot older than this",
    )

    # Protocol codes
    permanent_code_prefix: str = Field(default="SPUP", min_length=1)

    log_level: str = Field(default="INFO")

    # Derived / internal
    @property
    def upload_dir_path(self) -> Path:
        return Path(self.upload_dir)

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def production(self) -> bool:
        return self.secret_key != "dev-secret-key-change-in-production"

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host)


settings = Settings()

# Convenience names for imports
UPLOADS_DIR = settings.upload_dir_path
MAX_UPLOAD_MB = settings.max_upload_size_mb
MAX_UPLOAD_BYTES = settings.max_upload_bytes
DATABASE_URL = settings.database_url
PRODUCTION = settings.production
PREVIEWABLE_EXTENSIONS = {".pdf", ".png", ".jpg", ".jpeg", ".webp", ".gif"}
ARCHIVE_COMPRESSION_LEVEL = 6
INITIAL_HASH = "0" * 64
