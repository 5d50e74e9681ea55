# curator/config.py
"""
Centralized configuration with validation.

Uses pydantic-settings to load and validate all environment variables at startup.
Fail fast with clear error messages if required config is missing.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = Field(
        ...,
        description="PostgreSQL connection URL",
    )

    # Authentication
    ADMIN_API_KEY: str | None = Field(
        default=None,
        description="API key for admin ingestion endpoints",
    )

    # Application
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    LOG_JSON: bool = Field(
        default=True,
        description="Emit single-line JSON logs (False for human-readable local output)",
    )
    RUN_BACKGROUND_WORKERS: bool = Field(
        default=False,
        description="Start the scheduler and job dispatcher inside the API process",
    )

    # Job queue
    QUEUE_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        description="Total delivery attempts per job before it is terminally failed",
    )
    QUEUE_BACKOFF_BASE_SECONDS: float = Field(
        default=2.0,
        ge=0,
        description="Exponential backoff base: delay = base * 2 ** (attempt - 1)",
    )
    QUEUE_LEASE_SECONDS: int = Field(
        default=300,
        description="Seconds an active job may run before it is considered stalled",
    )
    QUEUE_COMPLETED_RETENTION_HOURS: int = Field(default=24)
    QUEUE_COMPLETED_RETENTION_COUNT: int = Field(default=1000)
    QUEUE_FAILED_RETENTION_DAYS: int = Field(default=7)

    # Worker
    WORKER_CONCURRENCY: int = Field(
        default=5,
        ge=1,
        description="Maximum jobs in flight per worker process",
    )
    WORKER_RATE_PER_SECOND: float = Field(
        default=10.0,
        gt=0,
        description="Maximum job deliveries per second per worker process",
    )
    WORKER_POLL_INTERVAL_SECONDS: float = Field(default=1.0, gt=0)
    JOB_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        gt=0,
        description="Execution timeout for a single ingestion job, enforced by the worker",
    )
    JOB_TIMEOUT_GRACE_SECONDS: float = Field(
        default=10.0,
        ge=0,
        description="Extra time the dispatcher allows before cancelling a job outright",
    )

    # Scheduler
    SCHEDULER_INTERVAL_MINUTES: int = Field(default=15, ge=1)
    SCHEDULER_STAGGER_SECONDS: float = Field(
        default=1.0,
        ge=0,
        description="Delay increment between successive jobs emitted in one pass",
    )

    # Extractors
    FEED_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    SCRAPE_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0)
    HTTP_USER_AGENT: str = Field(
        default="Mozilla/5.0 (compatible; NewsCuratorBot/1.0; +https://news-curator.com/bot)",
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def fix_database_url(cls, v: str) -> str:
        """Hosted Postgres provides postgresql:// but SQLAlchemy needs postgresql+psycopg2://"""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+psycopg2://", 1)
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached application settings. Call at startup to validate config."""
    return Settings()
