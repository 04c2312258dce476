"""
Queue configuration using Pydantic Settings.
Loads configuration from GRATTIS_* environment variables with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueSettings(BaseSettings):
    """Queue settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="GRATTIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "grattis"
    collection_name: str = "Event"
    server_selection_timeout_ms: int = Field(default=5000, gt=0)

    # Poller
    poll_interval_seconds: float = Field(default=60.0, gt=0)
    batch_size: int = Field(default=10_000, gt=0)

    # Observability
    log_level: str = "INFO"


@lru_cache
def get_settings() -> QueueSettings:
    """Get cached settings instance."""
    return QueueSettings()
