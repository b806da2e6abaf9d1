"""
Configuration Utility - Environment Variables Management

Centralized configuration loading from the environment and .env files using
pydantic-settings. Type-safe access to queue, scheduling and logging settings.

Usage:
    from utils.config import get_settings

    settings = get_settings()
    queue_url = settings.QUEUE_URL
    dlq_url = settings.DLQ_URL

QUEUE_URL is required. Settings are built lazily so that the service can
report a missing value and exit instead of failing at import time.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DLQ_SUFFIX = "-dlq"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Queue Configuration
    QUEUE_URL: str = Field(..., min_length=1, description="Primary queue URL")
    DLQ_URL: Optional[str] = Field(default=None, description="Dead-letter queue URL")
    REGION: str = Field(default="us-east-1")
    SQS_ENDPOINT_URL: Optional[str] = Field(default=None)

    # Poll Loop Configuration
    RECEIVE_MAX_MESSAGES: int = Field(default=10, ge=1, le=10)
    RECEIVE_WAIT_SECONDS: int = Field(default=20, ge=0, le=20)
    VISIBILITY_TIMEOUT: int = Field(default=30, ge=30)
    IDLE_DELAY_SECONDS: float = Field(default=1.0, ge=0)

    # DLQ Reprocessor Configuration
    DLQ_INTERVAL_SECONDS: float = Field(default=60.0, gt=0)
    DLQ_WAIT_SECONDS: int = Field(default=5, ge=0, le=20)
    DLQ_VISIBILITY_TIMEOUT: int = Field(default=30, ge=30)
    DLQ_MAX_BATCHES: int = Field(default=10, ge=1)

    # Queue Client Retry Configuration
    QUEUE_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    QUEUE_RETRY_BACKOFF_SECONDS: float = Field(default=1.0, ge=0)

    # Run Mode
    RUN_ONCE: bool = Field(default=False, description="One poll cycle and one DLQ drain, then exit")

    # Shutdown
    SHUTDOWN_GRACE_SECONDS: float = Field(default=10.0, ge=0)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")

    # Application Metadata
    ENVIRONMENT_TAG: str = Field(default="production", min_length=1)
    APP_NAME: str = Field(default="petclinic-report-consumer")
    APP_VERSION: str = Field(default="0.1.0")

    @field_validator("QUEUE_URL", "DLQ_URL", "SQS_ENDPOINT_URL")
    @classmethod
    def strip_url(cls, v: Optional[str]) -> Optional[str]:
        """Trim surrounding whitespace; treat blank optional URLs as unset."""
        if v is None:
            return v
        v = v.strip()
        return v or None

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @model_validator(mode="after")
    def derive_dlq_url(self) -> "Settings":
        """Default DLQ_URL to QUEUE_URL + '-dlq' and keep the two queues distinct."""
        if not self.QUEUE_URL:
            raise ValueError("QUEUE_URL is required")
        if not self.DLQ_URL:
            self.DLQ_URL = f"{self.QUEUE_URL}{DLQ_SUFFIX}"
        if self.DLQ_URL == self.QUEUE_URL:
            raise ValueError("DLQ_URL must differ from QUEUE_URL")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance

    Raises:
        pydantic.ValidationError: If required configuration is missing or invalid
    """
    return Settings()


def describe_config_error(error: ValidationError) -> str:
    """Summarize settings validation errors as 'FIELD: message' pairs."""
    parts = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "settings"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)
