"""vibe-guard - command execution and safety engine for agentic CLIs.

Decides whether an agent-issued shell command or tool invocation may run,
runs it under controlled conditions, and records what happened:

- Command validation (deny-list, allow-list, approval, heuristics)
- Secret masking before anything is logged or displayed
- Append-only audit log
- Async process execution with streaming, timeouts, retries, cancellation
- Tool chain planning and orchestration with bounded recovery
"""

from vibe_guard.config import (
    SettingsContext,
    VibeSettings,
    get_settings,
    reload_settings,
    set_settings,
)
from vibe_guard.errors import ErrorKind, ExecutionError, ToolError, VibeGuardError
from vibe_guard.execution import (
    ExecutionOptions,
    ExecutionProgress,
    ExecutorConfig,
    ProcessExecutor,
    ShellResult,
)
from vibe_guard.logging import configure_logging, get_logger
from vibe_guard.orchestration import ToolChain, ToolExecution, ToolOrchestrator
from vibe_guard.security import (
    AuditLog,
    CommandValidation,
    CommandValidator,
    RiskLevel,
    SecretMasker,
    mask_secrets,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Settings
    "VibeSettings",
    "SettingsContext",
    "get_settings",
    "set_settings",
    "reload_settings",
    # Logging
    "configure_logging",
    "get_logger",
    # Errors
    "ErrorKind",
    "ExecutionError",
    "ToolError",
    "VibeGuardError",
    # Security
    "CommandValidator",
    "CommandValidation",
    "RiskLevel",
    "SecretMasker",
    "mask_secrets",
    "AuditLog",
    # Execution
    "ProcessExecutor",
    "ExecutionOptions",
    "ExecutionProgress",
    "ExecutorConfig",
    "ShellResult",
    # Orchestration
    "ToolOrchestrator",
    "ToolChain",
    "ToolExecution",
]
