"""Error taxonomy for channels, pools and synchronization primitives.

Every error carries a machine-readable code and a recoverable flag so callers
can decide between retrying, rejecting new work, or failing fast.

Two families:
    - Flow conditions (channel closed, pool closed, select timeout): returned
      to callers for local handling.
    - Contract violations (lock misuse, negative wait group): programming
      defects. Raised immediately and never retried inside taskcore.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar


class ErrorCode(StrEnum):
    """Standard error codes for taskcore failures."""
    CHANNEL_CLOSED = "CHANNEL_CLOSED"
    POOL_CLOSED = "POOL_CLOSED"
    TIMEOUT = "TIMEOUT"
    CONTRACT_VIOLATION = "CONTRACT_VIOLATION"
    LOCK_MISUSE = "LOCK_MISUSE"
    WAITGROUP_MISUSE = "WAITGROUP_MISUSE"
    ONCE_FAILED = "ONCE_FAILED"
    UNKNOWN = "UNKNOWN"


class TaskcoreError(Exception):
    """Base for all taskcore errors.

    Attributes:
        code: Machine-readable classification
        recoverable: Whether the caller can reasonably continue (e.g. reject
            new work and carry on) rather than treat it as a defect
    """

    code: ClassVar[ErrorCode] = ErrorCode.UNKNOWN
    recoverable: ClassVar[bool] = True

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return cls.code.value.replace("_", " ").lower()


class ClosedChannelError(TaskcoreError):
    """Send on a closed channel. Caller bug, surfaced immediately."""

    code = ErrorCode.CHANNEL_CLOSED
    recoverable = False

    @classmethod
    def default_message(cls) -> str:
        return "send on closed channel"


class PoolClosedError(TaskcoreError):
    """Submit (or start) after pool shutdown has begun."""

    code = ErrorCode.POOL_CLOSED
    recoverable = True

    @classmethod
    def default_message(cls) -> str:
        return "pool is shut down"


class SelectTimeoutError(TaskcoreError, TimeoutError):
    """Selective wait deadline elapsed with no ready source."""

    code = ErrorCode.TIMEOUT
    recoverable = True

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout
        super().__init__(f"no channel ready within {timeout}s" if timeout is not None else "")


class ContractViolationError(TaskcoreError):
    """Programming-contract violation. Fatal: retrying cannot fix it."""

    code = ErrorCode.CONTRACT_VIOLATION
    recoverable = False


class LockMisuseError(ContractViolationError):
    """Release (or condition wait) without holding the lock."""

    code = ErrorCode.LOCK_MISUSE


class WaitGroupMisuseError(ContractViolationError):
    """Wait group counter driven below zero."""

    code = ErrorCode.WAITGROUP_MISUSE

    @classmethod
    def default_message(cls) -> str:
        return "negative wait group counter"


class OnceFailedError(TaskcoreError):
    """A OnceLatch action failed and the latch does not retry.

    The original exception is available as ``__cause__``.
    """

    code = ErrorCode.ONCE_FAILED
    recoverable = False

    @classmethod
    def default_message(cls) -> str:
        return "once action failed"


# Pre-computed set of codes a caller may handle and continue from
_RECOVERABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.POOL_CLOSED,
    ErrorCode.TIMEOUT,
})


def is_recoverable(exc: BaseException) -> bool:
    """Whether exc is a taskcore condition the caller can handle locally."""
    return isinstance(exc, TaskcoreError) and exc.code in _RECOVERABLE_CODES
