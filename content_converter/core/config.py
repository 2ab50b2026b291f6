"""Application configuration loaded from environment variables.

All configuration is via environment variables (or a local .env file).
No hardcoded URLs, ports, or credentials.
"""

from functools import lru_cache

from pydantic import Field, PostgresDsn
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Legacy Content Converter")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    environment: str = Field(default="development")

    # Server
    port: int = Field(default=8000, description="Port to bind to")
    host: str = Field(default="0.0.0.0", description="Host to bind to")

    # Database
    database_url: PostgresDsn = Field(
        ...,
        description="PostgreSQL connection string",
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size")
    db_max_overflow: int = Field(default=10, description="Max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    db_slow_query_threshold_ms: int = Field(
        default=100, description="Threshold for slow query warnings (ms)"
    )
    db_connect_timeout: int = Field(
        default=60, description="Connection timeout in seconds"
    )
    db_command_timeout: int = Field(
        default=60, description="Command timeout in seconds"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format: json or text")

    # SMTP (conversion result notifications)
    smtp_host: str | None = Field(default=None, description="SMTP server host")
    smtp_port: int = Field(default=587, description="SMTP server port")
    smtp_username: str | None = Field(default=None, description="SMTP username")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Upgrade to TLS via STARTTLS")
    smtp_use_ssl: bool = Field(default=False, description="Connect with implicit TLS")
    smtp_timeout: float = Field(default=30.0, description="SMTP timeout in seconds")
    smtp_from_email: str | None = Field(default=None, description="Sender address")
    smtp_from_name: str = Field(
        default="Legacy Content Converter", description="Sender display name"
    )

    # Scheduler
    scheduler_enabled: bool = Field(
        default=False, description="Start the background scheduler with the API"
    )
    scheduler_misfire_grace_time: int = Field(
        default=300, description="Seconds a late job may still run"
    )
    scheduler_job_coalesce: bool = Field(
        default=True, description="Collapse missed runs into a single run"
    )
    scheduler_job_default_max_instances: int = Field(
        default=1, description="Concurrent instances allowed per job"
    )

    # Conversion defaults (used by scheduled runs and as API/CLI defaults)
    conversion_delete_source_upon_conversion: bool = Field(
        default=False, description="Delete notes/attachments once converted"
    )
    conversion_share_private: bool = Field(
        default=False, description="Share private records with their parent"
    )
    conversion_convert_if_sharing_capability_disabled: bool = Field(
        default=False,
        description="Convert records whose parent type does not support sharing",
    )
    conversion_route_inbound_message_attachments_to_case: bool = Field(
        default=False,
        description="Share inbound email attachments with the email's parent",
    )
    conversion_share_type: str = Field(
        default="V", description="Share type for created links (V, C or I)"
    )
    conversion_visibility: str = Field(
        default="AllUsers", description="Visibility for created links"
    )
    conversion_batch_size: int = Field(
        default=200, description="Source records per pipeline invocation"
    )
    conversion_run_as_principal_id: str | None = Field(
        default=None, description="Principal the conversion job runs as"
    )
    conversion_notification_addresses: list[str] = Field(
        default_factory=list,
        description="Addresses that receive the conversion result email",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
