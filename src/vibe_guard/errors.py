"""Error taxonomy for command validation, execution and orchestration."""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Why an execution attempt did not succeed."""

    BLOCKED_BY_POLICY = "blocked_by_policy"  # Deny-list match, never executed
    VALIDATION_REJECTED = "validation_rejected"  # Dry-run block, never executed
    SPAWN_FAILURE = "spawn_failure"  # OS could not create the process
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    CANCELLED = "cancelled"
    AUDIT_WRITE_FAILURE = "audit_write_failure"  # Always swallowed

    @property
    def retryable(self) -> bool:
        """Whether the executor retries this kind of failure."""
        return self in _RETRYABLE


_RETRYABLE = frozenset(
    {ErrorKind.SPAWN_FAILURE, ErrorKind.TIMEOUT, ErrorKind.NON_ZERO_EXIT}
)


class VibeGuardError(Exception):
    """Base class for engine errors."""


class ExecutionError(VibeGuardError):
    """A single execution attempt failed.

    Raised inside the executor's attempt loop and converted into a failed
    ShellResult once retries are exhausted.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class ToolError(VibeGuardError):
    """Standard error for tool handler failures.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        recoverable: Whether the error might be recoverable
        details: Additional error details
        tool_name: Name of the tool that failed
    """

    def __init__(
        self,
        message: str,
        error_code: str = "TOOL_ERROR",
        recoverable: bool = False,
        details: dict[str, Any] | None = None,
        tool_name: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.recoverable = recoverable
        self.details = details or {}
        self.tool_name = tool_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "success": False,
            "error": {
                "message": self.message,
                "code": self.error_code,
                "recoverable": self.recoverable,
                "details": self.details,
                "tool_name": self.tool_name,
            },
        }


class ErrorCode:
    """Standard error codes for tool failures."""

    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    TIMEOUT = "TIMEOUT"
    COMMAND_FAILED = "COMMAND_FAILED"
    BLOCKED = "BLOCKED"
    DRY_RUN = "DRY_RUN"
    APPROVAL_DENIED = "APPROVAL_DENIED"
    MISSING_DEPENDENCY = "MISSING_DEPENDENCY"
    INTERNAL_ERROR = "INTERNAL_ERROR"
