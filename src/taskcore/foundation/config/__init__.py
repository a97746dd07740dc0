"""Configuration management using pydantic-settings.

Provides environment-based configuration with type safety and validation.
"""

from .settings import (
    DEFAULT_WORKERS,
    LoggingSettings,
    PoolSettings,
    SelectSettings,
    SyncSettings,
    TaskcoreSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "DEFAULT_WORKERS",
    "LoggingSettings",
    "PoolSettings",
    "SelectSettings",
    "SyncSettings",
    "TaskcoreSettings",
    "clear_settings_cache",
    "get_settings",
]
