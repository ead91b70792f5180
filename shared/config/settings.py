"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class PostgresSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    user: str = "regscope"
    password: SecretStr = SecretStr("regscope_dev_password")
    db: str = "regscope"

    pool_size: int = 5
    max_overflow: int = 5

    @property
    def async_url(self) -> str:
        """Generate async SQLAlchemy connection URL."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.db}"

    @property
    def sync_url(self) -> str:
        """Generate sync SQLAlchemy connection URL."""
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.db}"


class PipelineSettings(BaseSettings):
    """Scope extraction and fingerprint pipeline configuration."""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    # Tree walking
    text_depth_limit: int = 15
    scope_depth_limit: int = 64
    scope_tags: str = "DIV3,DIV5"
    content_tags: str = "P,HEAD"
    scope_attribute: str = "N"

    # Batch execution
    max_concurrent_pairs: int = Field(default=1, ge=1)
    fetch_timeout_seconds: float = 60.0
    store_timeout_seconds: float = 30.0
    fetch_retries: int = 3

    # Serving path truncation
    preview_max_results: int = 10

    checksum_algorithm: str = "SHA-256"

    @property
    def scope_tags_list(self) -> list[str]:
        """Parse scope-bearing tags into a list."""
        return [t.strip() for t in self.scope_tags.split(",") if t.strip()]

    @property
    def content_tags_list(self) -> list[str]:
        """Parse content-bearing tags into a list."""
        return [t.strip() for t in self.content_tags.split(",") if t.strip()]


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    json_logs: bool = False

    # Project paths
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    # Database connections
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)

    # Pipeline
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
