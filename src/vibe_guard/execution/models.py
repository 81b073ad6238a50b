"""Data models for process execution."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable

from vibe_guard.errors import ErrorKind


class ExecutionStatus(Enum):
    """Lifecycle of one execution attempt.

    STARTING -> RUNNING -> COMPLETED | FAILED | CANCELLED
    """

    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class ProgressEvent(Enum):
    """Why a progress snapshot was published."""

    STARTING = "starting"  # Before the OS process exists
    SPAWNED = "spawned"  # pid known, process registered
    STDOUT = "stdout"
    STDERR = "stderr"
    TIMEOUT = "timeout"  # Deadline hit, SIGTERM sent
    RETRY = "retry"  # Attempt failed, backing off before the next one
    EXITED = "exited"
    CANCELLED = "cancelled"
    BACKGROUND = "background"  # Detached, not waited on


@dataclass
class ExecutionProgress:
    """Mutable progress record for one attempt.

    Owned by the executor; callers only ever see ``snapshot()`` copies.
    """

    command: str
    start_time: float
    status: ExecutionStatus = ExecutionStatus.STARTING
    pid: int | None = None
    exit_code: int | None = None
    signal: str | None = None
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0
    attempt: int = 0
    event: ProgressEvent = ProgressEvent.STARTING

    def snapshot(self) -> "ExecutionProgress":
        """Read-only copy for publishing."""
        return replace(self)


ChunkCallback = Callable[[str], "Awaitable[None] | None"]
ProgressCallback = Callable[[ExecutionProgress], "Awaitable[None] | None"]


@dataclass
class ExecutionOptions:
    """Options for a single ``ProcessExecutor.execute`` call.

    Attributes:
        cwd: Working directory (default: current directory).
        env: Environment overrides merged over the inherited environment.
        timeout: Seconds before SIGTERM (None: executor default).
        stream_output: Deliver chunks to on_stdout/on_stderr.
        on_stdout: Called once per OS-level stdout chunk.
        on_stderr: Called once per OS-level stderr chunk.
        on_progress: Called with a snapshot on every transition and chunk.
        progress_channel: Queue receiving the same snapshots (dropped when full).
        retry_count: Additional attempts after a retryable failure.
        retry_delay: Base backoff in seconds (delay * 2**attempt).
        cancel_event: Setting it cancels the running attempt or pending backoff.
    """

    cwd: str | None = None
    env: dict[str, str] | None = None
    timeout: float | None = None
    stream_output: bool = False
    on_stdout: ChunkCallback | None = None
    on_stderr: ChunkCallback | None = None
    on_progress: ProgressCallback | None = None
    progress_channel: "asyncio.Queue[ExecutionProgress] | None" = None
    retry_count: int | None = None
    retry_delay: float | None = None
    cancel_event: asyncio.Event | None = None


@dataclass(frozen=True)
class ShellResult:
    """Terminal outcome of one ``execute`` call (all attempts).

    Attributes:
        command: Command as issued.
        directory: Working directory used.
        stdout: Standard output of the last attempt (may be truncated).
        stderr: Standard error of the last attempt (may be truncated).
        exit_code: Exit code, None if killed by a signal or never spawned.
        success: Exit code 0 without timeout or cancellation.
        duration: Seconds from first attempt start to last attempt end.
        signal: Name of the terminating signal, if any.
        error: Human-readable failure description.
        error_kind: Failure category.
        pid: pid of the last attempt.
        attempts: Number of attempts made.
        background_pids: pids of detached processes.
        risk_level: Risk level value assigned by validation.
        truncated: Whether output was truncated.
    """

    command: str
    directory: str
    stdout: str
    stderr: str
    exit_code: int | None
    success: bool
    duration: float = 0.0
    signal: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    pid: int | None = None
    attempts: int = 0
    background_pids: tuple[int, ...] = ()
    risk_level: str | None = None
    truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (tool output format)."""
        return {
            "command": self.command,
            "directory": self.directory,
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "signal": self.signal,
            "duration": round(self.duration, 3),
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "pid": self.pid,
            "attempts": self.attempts,
            "background_pids": list(self.background_pids),
            "risk_level": self.risk_level,
            "truncated": self.truncated,
        }


@dataclass
class AttemptOutcome:
    """Result of a single spawn-and-wait attempt (internal)."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    signal: str | None = None
    pid: int | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    progress: ExecutionProgress | None = field(default=None, repr=False)

    @property
    def success(self) -> bool:
        return self.error_kind is None
