"""Gateway settings loaded from ``ADRELAY_*`` environment variables.

Values can also come from a ``.env`` file in the working directory. Nothing
here is written back to disk: tokens obtained at runtime live in memory only.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Resumable uploads require chunk sizes in multiples of 256 KiB
UPLOAD_CHUNK_UNIT = 256 * 1024

DEFAULT_ALLOWED_ORIGINS = ["https://data-add-management.netlify.app"]


class Settings(BaseSettings):
    """Process-wide gateway configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ADRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 5000
    log_level: str = "INFO"
    allowed_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))

    # Video provider OAuth (mandatory for the /auth routes)
    youtube_client_id: str | None = None
    youtube_client_secret: str | None = None
    youtube_redirect_uri: str | None = None
    post_login_redirect: str | None = None
    youtube_auth_scheme: Literal["managed", "caller"] = "managed"

    # Static service credentials
    twitter_bearer_token: str | None = None
    snapchat_access_token: str | None = None

    # Search-ads provider
    google_ads_developer_token: str | None = None
    google_ads_login_customer_id: str | None = None
    google_ads_access_token: str | None = None
    google_ads_api_version: str = "v17"

    # Uploads
    scratch_dir: Path = Path("uploads")
    http_timeout: float = 30.0
    upload_timeout: float = 1800.0
    upload_chunk_size: int = 8 * 1024 * 1024
    upload_max_retries: int = 5

    @field_validator("upload_chunk_size")
    @classmethod
    def _align_chunk_size(cls, value: int) -> int:
        return max(UPLOAD_CHUNK_UNIT, value - value % UPLOAD_CHUNK_UNIT)

    @field_validator("google_ads_login_customer_id")
    @classmethod
    def _strip_customer_dashes(cls, value: str | None) -> str | None:
        # Console shows ids as 123-456-7890, the API wants digits only
        return value.replace("-", "") if value else value

    def missing_oauth_settings(self) -> list[str]:
        """Names of the mandatory OAuth options that are not set."""
        required = {
            "youtube_client_id": self.youtube_client_id,
            "youtube_client_secret": self.youtube_client_secret,
            "youtube_redirect_uri": self.youtube_redirect_uri,
        }
        return [name for name, value in required.items() if not value]

    @property
    def oauth_configured(self) -> bool:
        return not self.missing_oauth_settings()

    @classmethod
    def load(cls) -> Settings:
        """Build settings from the current environment."""
        return cls()


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the cached process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings() -> None:
    """Forget cached settings (tests)."""
    global _settings
    _settings = None
