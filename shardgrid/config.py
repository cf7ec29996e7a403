"""
Application Configuration

Loads configuration from environment variables and provides
type-safe access to settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Cluster connection
    cluster_id: str = Field(default="default", alias="SHARDGRID_CLUSTER_ID")
    cluster_url: str = Field(default="http://localhost:9200", alias="SHARDGRID_CLUSTER_URL")
    request_timeout: float = Field(default=30.0, alias="SHARDGRID_REQUEST_TIMEOUT")
    api_key: Optional[str] = Field(default=None, alias="SHARDGRID_API_KEY")

    # Refresh & tracking (seconds)
    refresh_interval: float = Field(default=30.0, alias="SHARDGRID_REFRESH_INTERVAL")
    relocation_poll_interval: float = Field(default=2.0, alias="SHARDGRID_RELOCATION_POLL_INTERVAL")
    relocation_timeout: float = Field(default=300.0, alias="SHARDGRID_RELOCATION_TIMEOUT")

    # Snapshot cache (seconds)
    snapshot_cache_ttl: float = Field(default=30.0, alias="SHARDGRID_SNAPSHOT_CACHE_TTL")

    # Logging
    log_level: str = Field(default="INFO", alias="SHARDGRID_LOG_LEVEL")
    log_format: str = Field(default="text", alias="SHARDGRID_LOG_FORMAT")

    @field_validator(
        "request_timeout",
        "refresh_interval",
        "relocation_poll_interval",
        "relocation_timeout",
        "snapshot_cache_ttl",
    )
    @classmethod
    def must_be_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("log_format")
    @classmethod
    def known_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")
        return value

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
