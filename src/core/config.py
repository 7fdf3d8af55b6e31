"""Application configuration via Pydantic settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration object loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "Marketplace Booking Engine"
    debug: bool = False
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    database_url: str = Field("sqlite+aiosqlite:///./booking.db", alias="DATABASE_URL")

    default_timezone: str = Field("Europe/Paris", alias="DEFAULT_TIMEZONE")
    default_currency: str = Field("EUR", alias="DEFAULT_CURRENCY")

    optimistic_retry_attempts: int = Field(3, alias="OPTIMISTIC_RETRY_ATTEMPTS")
    payment_due_days: int = Field(7, alias="PAYMENT_DUE_DAYS")
    reminder_max_retries: int = Field(3, alias="REMINDER_MAX_RETRIES")

    worker_poll_interval_seconds: float = Field(60.0, alias="WORKER_POLL_INTERVAL")
    worker_batch_size: int = Field(100, alias="WORKER_BATCH_SIZE")

    payment_provider_base: str = Field("https://payments.invalid", alias="PAYMENT_PROVIDER_BASE")
    payment_provider_key: str = Field("", alias="PAYMENT_PROVIDER_KEY")
    payment_provider_timeout_seconds: float = Field(5.0, alias="PAYMENT_PROVIDER_TIMEOUT_SECONDS")

    push_gateway_base: str = Field("https://push.invalid", alias="PUSH_GATEWAY_BASE")
    push_gateway_timeout_seconds: float = Field(5.0, alias="PUSH_GATEWAY_TIMEOUT_SECONDS")


@lru_cache(1)
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()


settings = get_settings()
