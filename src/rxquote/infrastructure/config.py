"""Application configuration.

Settings are read from ``RXQUOTE_*`` environment variables and an
optional ``.env`` file.  Only the composition root reads them; the
domain and application layers receive plain values.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="RXQUOTE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    api_base_url: str = "http://localhost:5000"
    api_token: str | None = None
    request_timeout_seconds: float = Field(10.0, gt=0)

    poll_interval_seconds: float = Field(3.0, gt=0)
    tick_interval_seconds: float = Field(1.0, gt=0)
    lapse_warning_seconds: int = Field(60, ge=0)

    data_dir: Path = Path("data")
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
