"""
Configuration Module
====================

Centralized configuration management using Pydantic Settings.
Loads from environment variables with type validation and defaults.

Usage:
    from shared.config import settings

    print(settings.environment)
    print(settings.pipeline.text_depth_limit)
"""

from shared.config.settings import (
    Environment,
    LogLevel,
    PipelineSettings,
    PostgresSettings,
    Settings,
    get_settings,
)


# Global settings instance (singleton)
settings = get_settings()

__all__ = [
    "Settings",
    "PostgresSettings",
    "PipelineSettings",
    "get_settings",
    "settings",
    "Environment",
    "LogLevel",
]
