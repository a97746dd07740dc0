"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with sensible defaults. Supports .env files and nested configuration.

Example:
    >>> from taskcore.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.pool.queue_capacity
    0
    >>> settings.logging.level
    'INFO'

    # Or with environment variables:
    # TASKCORE_POOL_WORKERS=8
    # TASKCORE_LOG_LEVEL=DEBUG
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, NonNegativeInt, PositiveInt, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

# I/O bound heuristic, same as concurrent.futures
_CPU_COUNT = os.cpu_count() or 1
DEFAULT_WORKERS = min(32, _CPU_COUNT + 4)


class PoolSettings(BaseSettings):
    """Worker pool defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TASKCORE_POOL_",
        extra="ignore",
    )

    workers: PositiveInt = Field(default=DEFAULT_WORKERS, description="Worker threads per pool")
    queue_capacity: NonNegativeInt = Field(default=0, description="Job channel capacity (0 = rendezvous)")
    result_capacity: NonNegativeInt | None = Field(
        default=None,
        description="Result channel capacity; None follows queue_capacity",
    )
    thread_name_prefix: str = "taskcore-worker-"

    @computed_field
    @property
    def effective_result_capacity(self) -> int:
        """Result channel capacity after applying the queue fallback."""
        return self.queue_capacity if self.result_capacity is None else self.result_capacity


class SyncSettings(BaseSettings):
    """Synchronization primitive policies."""

    model_config = SettingsConfigDict(
        env_prefix="TASKCORE_SYNC_",
        extra="ignore",
    )

    rwlock_prefer_writers: bool = Field(
        default=True,
        description="Pending writers block new readers (prevents writer starvation)",
    )
    once_retry_on_error: bool = Field(
        default=False,
        description="Let the next OnceLatch caller retry after a failed action",
    )


class SelectSettings(BaseSettings):
    """Selective wait behaviour."""

    model_config = SettingsConfigDict(
        env_prefix="TASKCORE_SELECT_",
        extra="ignore",
    )

    fair: bool = Field(default=True, description="Randomize scan order among ready channels")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TASKCORE_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "none"] = "console"


class TaskcoreSettings(BaseSettings):
    """Root settings for taskcore.

    Loads configuration from environment variables with TASKCORE_ prefix.
    Explicit constructor arguments on pools and primitives always win.

    Example environment variables:
        TASKCORE_POOL_WORKERS=4
        TASKCORE_POOL_QUEUE_CAPACITY=64
        TASKCORE_SYNC_RWLOCK_PREFER_WRITERS=false
        TASKCORE_SELECT_FAIR=false
        TASKCORE_LOG_FORMAT=json
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    pool: PoolSettings = Field(default_factory=PoolSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    select: SelectSettings = Field(default_factory=SelectSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> TaskcoreSettings:
    """Get the global settings instance (cached)."""
    return TaskcoreSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
