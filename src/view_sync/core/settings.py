"""Application settings and configuration.

This module defines all configuration options for the view sync service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Story View Sync", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Durable store
    database_url: str = Field(default="sqlite:///./views.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis buffer store
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    redis_socket_timeout_seconds: float = Field(
        default=5.0,
        alias="REDIS_SOCKET_TIMEOUT_SECONDS",
    )
    view_tracking_enabled: bool = Field(default=False, alias="VIEW_TRACKING_REDIS_ENABLED")

    # Flush job tuning
    view_sync_batch_size: int = Field(default=500, ge=1, alias="VIEW_SYNC_BATCH_SIZE")
    view_sync_batch_pause_seconds: float = Field(
        default=0.1,
        ge=0.0,
        alias="VIEW_SYNC_BATCH_PAUSE_SECONDS",
    )
    view_sync_cron: str = Field(default="0 2,14 * * *", alias="VIEW_SYNC_CRON")
    view_sync_interval_hours: int = Field(default=12, alias="VIEW_SYNC_INTERVAL_HOURS")
    view_dedup_ttl_hours: int = Field(default=24, alias="VIEW_DEDUP_TTL_HOURS")
    view_count_cache_ttl_seconds: int = Field(
        default=300,
        alias="VIEW_COUNT_CACHE_TTL_SECONDS",
    )

    # Shared secret expected from the external scheduler
    cron_secret: str | None = Field(default=None, alias="CRON_SECRET")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def job_info(self) -> dict[str, object]:
        """Return the public description of the sync job.

        Returns:
            Dictionary with schedule, interval, and buffering configuration
        """
        return {
            "job": "sync-views",
            "schedule": self.view_sync_cron,
            "interval": f"{self.view_sync_interval_hours} hours",
            "enabled": self.view_tracking_enabled,
            "dedup_ttl": f"{self.view_dedup_ttl_hours} hours",
            "batch_size": self.view_sync_batch_size,
        }


settings = Settings()
