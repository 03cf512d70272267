"""Operational runtime behavior configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OperationalConfig(BaseSettings):
    """Queue, retry and sweep settings.

    Environment variables:
        NEWSCAST_MAX_CONCURRENT_JOBS: Concurrency ceiling for running jobs
        NEWSCAST_MAX_CHUNK_RETRIES: Retries allowed per chunk
        NEWSCAST_RETRY_BASE_DELAY_SECONDS: Base delay for exponential backoff
        NEWSCAST_RETRY_CEILING: Retry sweeps allowed per failed brief
    """

    model_config = SettingsConfigDict(
        env_prefix="NEWSCAST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_concurrent_jobs: int = Field(default=3, ge=1, description="Jobs executed in parallel")
    max_chunk_retries: int = Field(default=3, ge=0, description="Retries per chunk before a job fails")
    retry_base_delay_seconds: float = Field(default=2.0, ge=0.0, description="Backoff base delay")
    upload_attempts: int = Field(default=2, ge=1, description="Object store attempts per job")

    retry_ceiling: int = Field(default=3, ge=0, description="Retry sweeps allowed per failed brief")
    recurrence_interval_seconds: float = Field(default=60.0, gt=0)
    retry_interval_seconds: float = Field(default=900.0, gt=0)
    cleanup_interval_seconds: float = Field(default=86400.0, gt=0)
    temp_file_max_age_minutes: int = Field(default=60, ge=1)

    job_history_size: int = Field(
        default=200,
        ge=0,
        description="Finished jobs kept in memory for status lookups"
    )
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)

    status_host: str = Field(default="127.0.0.1", description="Status server bind address")
    status_port: int = Field(default=8089, description="Status server port")
