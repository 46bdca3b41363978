"""Application configuration settings."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"
ENV_FILE_ENCODING = "utf-8"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseSettings):
    """Application configuration values loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE, env_file_encoding=ENV_FILE_ENCODING, extra="ignore"
    )

    database_url: str = Field(
        default="sqlite:///./marketplace.db",
        description="Database connection URL used by SQLAlchemy to connect to the DB",
        min_length=1,
    )
    secret_key: str = Field(
        description="Secret key for signing JWT tokens", min_length=1
    )
    access_token_expire_minutes: int = Field(
        default=60,
        description="Number of minutes before access tokens expire",
        gt=0,
    )
    app_timezone: str = Field(
        default="UTC",
        description="IANA timezone name or UTC offset used for timestamps",
    )
    log_level: str = Field(default="INFO", description="Root logging level")

    sendgrid_api_key: str | None = Field(
        default=None,
        description="SendGrid API key used for sending notification emails via the REST API",
    )
    sendgrid_sender: str | None = Field(
        default=None,
        description="Email address that will appear as the sender of notification emails",
        min_length=3,
    )

    notifications_enabled: bool = Field(default=True)
    realtime_notifications_enabled: bool = Field(default=True)
    email_notifications_enabled: bool = Field(default=True)

    notification_retention_days: int = Field(default=90, gt=0)
    notification_cleanup_interval_hours: int = Field(default=24, gt=0)

    heartbeat_interval_seconds: float = Field(default=30.0, gt=0)
    stale_connection_seconds: float = Field(default=60.0, gt=0)
    reconcile_interval_seconds: float = Field(default=300.0, gt=0)
    max_connection_errors: int = Field(default=5, gt=0)

    retry_delays_ms: list[int] = Field(default_factory=lambda: [1000, 5000, 15000])
    max_retry_attempts: int = Field(default=3, ge=0)

    cubic_volume_threshold_kg: float = Field(default=32.0, gt=0)

    socket_rate_limit_events: int = Field(default=100, gt=0)
    socket_rate_limit_window_seconds: int = Field(default=60, gt=0)

    @model_validator(mode="after")
    def _validate_sendgrid_pair(self) -> "Settings":
        if bool(self.sendgrid_api_key) ^ bool(self.sendgrid_sender):
            raise ValueError(
                "SENDGRID_API_KEY and SENDGRID_SENDER must both be provided to enable email"
            )
        if self.sendgrid_sender and "@" not in self.sendgrid_sender:
            raise ValueError("SENDGRID_SENDER must be a valid email address")
        if not self.retry_delays_ms:
            raise ValueError("RETRY_DELAYS_MS must contain at least one delay")
        return self

    @property
    def realtime_enabled(self) -> bool:
        return self.notifications_enabled and self.realtime_notifications_enabled

    @property
    def email_enabled(self) -> bool:
        return self.notifications_enabled and self.email_notifications_enabled


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""

    return Settings()


def reset_settings_cache() -> None:
    """Clear the settings cache to force reloading from the environment."""

    get_settings.cache_clear()


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the root logging configuration for the process."""

    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


__all__ = [
    "Settings",
    "configure_logging",
    "get_settings",
    "reset_settings_cache",
]
