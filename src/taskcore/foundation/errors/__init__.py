"""Unified error handling for taskcore.

- ErrorCode: Standard error codes
- TaskcoreError: Base exception with code/recoverable classification
- Flow conditions: ClosedChannelError, PoolClosedError, SelectTimeoutError
- Contract violations: LockMisuseError, WaitGroupMisuseError
"""

from .errors import (
    ClosedChannelError,
    ContractViolationError,
    ErrorCode,
    LockMisuseError,
    OnceFailedError,
    PoolClosedError,
    SelectTimeoutError,
    TaskcoreError,
    WaitGroupMisuseError,
    is_recoverable,
)

__all__ = [
    "ErrorCode", "TaskcoreError", "is_recoverable",
    # Flow conditions
    "ClosedChannelError", "PoolClosedError", "SelectTimeoutError",
    # Contract violations
    "ContractViolationError", "LockMisuseError", "WaitGroupMisuseError", "OnceFailedError",
]
