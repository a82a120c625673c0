"""
Shared configuration management for the Vehicle Cache service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias="VT_ENV")
    log_level: str = Field(default="info", validation_alias="VT_LOG_LEVEL")

    # Object store
    s3_endpoint: str = Field(default="", validation_alias="AWS_ENDPOINT_URL_S3")
    s3_access_key: str = Field(default="", validation_alias="AWS_ACCESS_KEY_ID")
    s3_secret_key: str = Field(default="", validation_alias="AWS_SECRET_ACCESS_KEY")
    s3_bucket: str = Field(default="", validation_alias="VT_S3_BUCKET")
    s3_secure: bool = Field(default=True, validation_alias="VT_S3_SECURE")
    s3_region: Optional[str] = Field(default=None, validation_alias="VT_S3_REGION")

    # Refresh loops
    data_dir: str = Field(default="data", validation_alias="VT_DATA_DIR")
    poll_interval_seconds: float = Field(default=2.0, validation_alias="VT_POLL_INTERVAL_SECONDS")
    stale_threshold: int = Field(default=60, validation_alias="VT_STALE_THRESHOLD")
    dev_prefix: str = Field(default="dev_", validation_alias="VT_DEV_PREFIX")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "vehicle-cache"
    port: int = Field(default=8080, validation_alias="VT_HTTP_PORT")
    host: str = Field(default="0.0.0.0", validation_alias="VT_HOST")


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
