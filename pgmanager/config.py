"""Application configuration from environment variables."""

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env."""

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./pgmanager.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")
    db_timeout_seconds: int = Field(
        default=10,
        description="Upper bound for a single store call (busy timeout / statement timeout)",
    )

    # File storage
    upload_dir: str = Field(default="uploads", description="Root directory for uploaded files")
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, description="Maximum proof file size")

    # Cleanup
    member_retention_days: int = Field(
        default=30,
        description="Days after relieving before a settled member's data is purged",
    )

    # Notifications
    telegram_bot_token: str | None = Field(
        default=None, description="Telegram bot token; notifications are only logged when unset"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Server log file")

    # API
    api_title: str = Field(default="PG Manager API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")


# Global settings instance
settings = Settings()
