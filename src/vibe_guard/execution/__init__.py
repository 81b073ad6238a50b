"""Async process execution with streaming, timeouts, retries and cancellation."""

from vibe_guard.execution.config import ExecutorConfig
from vibe_guard.execution.executor import ProcessExecutor, split_background
from vibe_guard.execution.models import (
    ExecutionOptions,
    ExecutionProgress,
    ExecutionStatus,
    ProgressEvent,
    ShellResult,
)

__all__ = [
    "ProcessExecutor",
    "ExecutorConfig",
    "ExecutionOptions",
    "ExecutionProgress",
    "ExecutionStatus",
    "ProgressEvent",
    "ShellResult",
    "split_background",
]
