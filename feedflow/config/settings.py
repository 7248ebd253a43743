"""
FeedFlow Configuration System
=============================

Configuration management with environment variables and Pydantic models.
Environment variables (prefix ``FEEDFLOW_``, nested delimiter ``__``)
override Field defaults, e.g. ``FEEDFLOW_REFRESH__INTERVAL_SECONDS=600``.
"""

import os
from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FetchSettings(BaseModel):
    """HTTP fetch configuration shared by feed and page requests."""
    request_timeout: int = Field(default=30, ge=1, le=300, description="Request timeout in seconds")
    user_agent: str = Field(
        default="FeedFlow/1.0 (+https://github.com/feedflow/feedflow)",
        description="User agent for feed requests",
    )
    feed_accept: str = Field(
        default="application/rss+xml, application/atom+xml, application/feed+json, "
        "application/json, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8",
        description="Accept header for feed requests",
    )
    browser_user_agent: str = Field(
        default="Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/17.0 Safari/605.1.15",
        description="Desktop browser user agent for article page requests",
    )
    html_accept: str = Field(
        default="text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        description="Accept header for article page requests",
    )
    max_connections: int = Field(default=100, ge=1, le=1000, description="Connection pool size")


class ExtractionSettings(BaseModel):
    """Content extraction configuration."""
    min_content_length: int = Field(
        default=100, ge=0, description="Serialized length a content candidate must exceed"
    )
    encoding_sniff_bytes: int = Field(
        default=2048, ge=64, description="Bytes inspected for a charset hint"
    )


class RefreshSettings(BaseModel):
    """Background refresh configuration."""
    interval_seconds: float = Field(default=1800, gt=0, description="Seconds between background refreshes")


class OPMLSettings(BaseModel):
    """OPML import/export configuration."""
    default_title: str = Field(default="RSS Subscriptions", description="Title for exported documents")


class DatabaseSettings(BaseModel):
    """SQLite storage configuration."""
    path: str = Field(default="data/feedflow.db", description="SQLite database file path")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v):
        if not v or not v.strip():
            raise ValueError("database path cannot be empty")
        return v.strip()


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/feedflow.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class FeedFlowSettings(BaseSettings):
    """Main application settings."""

    fetch: FetchSettings = Field(default_factory=FetchSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    refresh: RefreshSettings = Field(default_factory=RefreshSettings)
    opml: OPMLSettings = Field(default_factory=OPMLSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="FeedFlow", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "FEEDFLOW_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate paths that must be creatable."""
        errors = []

        try:
            Path(self.database.path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                Path(self.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID,
            )

    def is_production_mode(self) -> bool:
        return not self.debug and os.getenv("ENV", "development").lower() == "production"

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> FeedFlowSettings:
    """Load settings from environment variables, .env and defaults.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = FeedFlowSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID,
        ) from e


_settings: Optional[FeedFlowSettings] = None


def get_settings(reload: bool = False) -> FeedFlowSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
