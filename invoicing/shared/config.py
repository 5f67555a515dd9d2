"""Shared configuration management for the invoice platform.

Based on Pydantic Settings v2:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_EXTRACTION_WEBHOOK_URL=https://workflows.example.com/webhook/invoices
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="invoice-manager",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )
    app_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL of this service, used to build the callback URL",
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Origins allowed to call the API from a browser",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./invoices.db",
        description="SQLAlchemy database URL (postgresql+psycopg://... in production)",
    )
    database_auto_create: bool = Field(
        default=True,
        description="Create missing tables on startup",
    )

    # Extraction workflow
    extraction_webhook_url: str = Field(
        default="http://localhost:5678/webhook/invoice-extraction",
        description="Webhook URL of the external extraction workflow",
    )
    extraction_callback_url: str | None = Field(
        default=None,
        description="Callback URL handed to the workflow (defaults to app_url based URL)",
    )
    extraction_webhook_secret: str | None = Field(
        default=None,
        description="Shared secret expected in the X-Webhook-Secret header of callbacks",
    )
    extraction_dispatch_timeout: float | None = Field(
        default=None,
        description="Timeout in seconds for the dispatch call (None = no timeout)",
    )
    default_currency: str = Field(
        default="EUR",
        description="Currency code assigned to invoices until extraction supplies one",
    )

    # Storage configuration (S3-compatible object storage for reports)
    storage_enabled: bool = Field(
        default=False,
        description="Enable report storage in S3-compatible storage (MinIO)",
    )
    storage_endpoint: str = Field(
        default="localhost:9000",
        description="S3-compatible storage endpoint (host:port)",
    )
    storage_access_key: str = Field(
        default="",
        description="Storage access key (use env var APP_STORAGE_ACCESS_KEY)",
    )
    storage_secret_key: str = Field(
        default="",
        description="Storage secret key (use env var APP_STORAGE_SECRET_KEY)",
    )
    storage_bucket: str = Field(
        default="reports",
        description="Bucket name for generated reports",
    )
    storage_secure: bool = Field(
        default=False,
        description="Use HTTPS for storage connections",
    )
    storage_url_expiry_seconds: int = Field(
        default=3600,
        description="Lifetime of presigned report download URLs",
    )

    # Change notifications
    realtime_enabled: bool = Field(
        default=False,
        description="Publish invoice change events to Redis pub/sub",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL used for invoice change notifications",
    )
    realtime_poll_interval_seconds: float = Field(
        default=3.0,
        description="Fallback polling interval for invoice observers",
        gt=0,
    )

    @property
    def callback_url(self) -> str:
        """URL the extraction workflow must call when it finishes."""
        if self.extraction_callback_url:
            return self.extraction_callback_url
        return f"{self.app_url.rstrip('/')}/api/webhooks/extraction-callback"


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
