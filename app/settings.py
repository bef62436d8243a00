from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    db_path: Path = Field(
        default=Path("data/feed-scheduler.db"), validation_alias="DB_PATH"
    )

    default_refresh_rate_minutes: int = Field(
        default=10, validation_alias="DEFAULT_REFRESH_RATE_MINUTES"
    )
    default_max_daily_deliveries: int = Field(
        default=50, validation_alias="DEFAULT_MAX_DAILY_DELIVERIES"
    )

    broker_url: str = Field(default="memory://", validation_alias="BROKER_URL")
    broker_queue_prefix: str = Field(
        default="feed-scheduler", validation_alias="BROKER_QUEUE_PREFIX"
    )
    broker_block_seconds: int = Field(
        default=5, validation_alias="BROKER_BLOCK_SECONDS"
    )

    redis_conn_timeout: float = Field(
        default=5.0, validation_alias="REDIS_CONN_TIMEOUT"
    )
    redis_retry_on_timeout: bool = Field(
        default=True, validation_alias="REDIS_RETRY_ON_TIMEOUT"
    )
    redis_health_check_interval: int = Field(
        default=30, validation_alias="REDIS_HEALTH_CHECK_INTERVAL"
    )

    benefits_api_url: str | None = Field(
        default=None, validation_alias="BENEFITS_API_URL"
    )
    benefits_api_key: str | None = Field(
        default=None, validation_alias="BENEFITS_API_KEY"
    )

    publish_concurrency: int = Field(default=8, validation_alias="PUBLISH_CONCURRENCY")
    cursor_batch_size: int = Field(default=500, validation_alias="CURSOR_BATCH_SIZE")
    tier_discovery_seconds: int = Field(
        default=300, validation_alias="TIER_DISCOVERY_SECONDS"
    )

    schedules_file: Path | None = Field(
        default=None, validation_alias="SCHEDULES_FILE"
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    json_logs: bool = Field(default=True, validation_alias="JSON_LOGS")

    @property
    def default_refresh_rate_seconds(self) -> int:
        return self.default_refresh_rate_minutes * 60
