"""Foundation - Core building blocks for taskcore.

Contains: error taxonomy, config.
"""

from __future__ import annotations

__all__ = [
    # Errors
    "ErrorCode", "TaskcoreError", "is_recoverable",
    "ClosedChannelError", "PoolClosedError", "SelectTimeoutError",
    "ContractViolationError", "LockMisuseError", "WaitGroupMisuseError", "OnceFailedError",
    # Config
    "TaskcoreSettings", "get_settings", "clear_settings_cache",
    "PoolSettings", "SyncSettings", "SelectSettings", "LoggingSettings", "DEFAULT_WORKERS",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("ErrorCode", "TaskcoreError", "is_recoverable",
                "ClosedChannelError", "PoolClosedError", "SelectTimeoutError",
                "ContractViolationError", "LockMisuseError", "WaitGroupMisuseError", "OnceFailedError"):
        from . import errors
        return getattr(errors, name)

    if name in ("TaskcoreSettings", "get_settings", "clear_settings_cache",
                "PoolSettings", "SyncSettings", "SelectSettings", "LoggingSettings", "DEFAULT_WORKERS"):
        from . import config
        return getattr(config, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
