"""Application configuration using Pydantic Settings.

Environment variables are loaded from .env files and system environment.
Engine defaults (retries, timeouts, worker pool size) live here so that
every component reads the same values.
"""

from functools import lru_cache
from typing import Any

from pydantic import RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    All settings can be overridden via environment variables.
    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "FlowDrop Engine"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # CORS
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v: Any) -> list[str]:
        """Parse ALLOWED_ORIGINS from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, list):
            return v
        return ["http://localhost:3000"]

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./flowdrop.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 30

    # Work queue
    REDIS_URL: RedisDsn | None = None
    QUEUE_NAME: str = "flowdrop_jobs"
    QUEUE_POLL_INTERVAL_SECONDS: float = 1.0

    # Engine
    DEFAULT_MAX_RETRIES: int = 3
    JOB_TIMEOUT_SECONDS: float = 300.0
    JOB_MEMORY_LIMIT_MB: int = 128
    WORKER_COUNT: int = 4
    MAX_CONCURRENT_JOBS: int = 5

    # Monitoring
    MONITOR_SLOW_EXECUTION_SECONDS: float = 30.0
    MONITOR_MEMORY_WARNING_PERCENT: float = 80.0
    MONITOR_MEMORY_LIMIT_MB: int | None = None  # None disables memory scoring

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: str | None = None  # Defaults to logs/flowdrop.log
    LOG_JSON_FORMAT: bool = True
    LOG_SENSITIVE_FILTER: bool = True

    @field_validator("WORKER_COUNT", "MAX_CONCURRENT_JOBS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Worker and concurrency limits must be at least one."""
        if v < 1:
            raise ValueError("must be at least 1")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are cached after first load for performance.
    """
    return Settings()


# Global settings instance
settings = get_settings()
