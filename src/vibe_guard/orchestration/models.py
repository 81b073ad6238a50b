"""Data models for tool chains.

Each tool has its own parameter dataclass; a ToolExecution pairs a tool
name with an instance of exactly that type.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from vibe_guard.security.models import RiskLevel

ChainRisk = Literal["low", "medium", "high"]


@dataclass(frozen=True)
class ReadFileParams:
    path: str | None = "."


@dataclass(frozen=True)
class WriteFileParams:
    file_path: str | None = None
    content: str | None = None


@dataclass(frozen=True)
class CreateDirectoryParams:
    dir_path: str = "new-project"


@dataclass(frozen=True)
class ListDirectoryParams:
    dir_path: str = "."
    show_hidden: bool = False


@dataclass(frozen=True)
class ProjectInfoParams:
    directory: str | None = None


@dataclass(frozen=True)
class CheckDependencyParams:
    package_name: str
    directory: str | None = None


@dataclass(frozen=True)
class ShellCommandParams:
    command: str
    directory: str | None = None


@dataclass(frozen=True)
class RunTestsParams:
    """Test runner step; the command is detected from the project when None."""

    command: str | None = None
    directory: str | None = None


@dataclass(frozen=True)
class RunLintParams:
    """Linter step; the command is detected from the project when None."""

    command: str | None = None
    directory: str | None = None


ToolParams = (
    ReadFileParams
    | WriteFileParams
    | CreateDirectoryParams
    | ListDirectoryParams
    | ProjectInfoParams
    | CheckDependencyParams
    | ShellCommandParams
    | RunTestsParams
    | RunLintParams
)

TOOL_PARAM_TYPES: dict[str, type] = {
    "read_file": ReadFileParams,
    "write_file": WriteFileParams,
    "create_directory": CreateDirectoryParams,
    "list_directory": ListDirectoryParams,
    "get_project_info": ProjectInfoParams,
    "check_dependency": CheckDependencyParams,
    "run_shell_command": ShellCommandParams,
    "run_tests": RunTestsParams,
    "run_lint": RunLintParams,
}


def params_to_dict(params: Any) -> dict[str, Any]:
    """Parameters as a plain dict (for audit details and display)."""
    return asdict(params)


@dataclass(frozen=True)
class ToolExecution:
    """One planned tool call.

    Attributes:
        tool_name: Registered tool name.
        params: Parameter dataclass matching the tool.
        depends_on: Tool names that must have succeeded earlier in the chain.
        retry_count: Additional attempts after a failure.
        timeout: Per-attempt timeout in seconds.
    """

    tool_name: str
    params: ToolParams
    depends_on: tuple[str, ...] = ()
    retry_count: int = 1
    timeout: float = 10.0

    def __post_init__(self):
        expected = TOOL_PARAM_TYPES.get(self.tool_name)
        if expected is None:
            raise ValueError(f"Tool not found: {self.tool_name}")
        if not isinstance(self.params, expected):
            raise ValueError(
                f"Tool {self.tool_name} expects {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")


@dataclass(frozen=True)
class ToolChain:
    """An ordered, dependency-annotated plan."""

    tools: tuple[ToolExecution, ...] = ()
    reasoning: str = ""
    estimated_duration: float = 0.0
    risk_level: ChainRisk = "low"

    def to_dict(self) -> dict[str, Any]:
        return {
            "tools": [
                {
                    "tool_name": t.tool_name,
                    "params": params_to_dict(t.params),
                    "depends_on": list(t.depends_on),
                    "retry_count": t.retry_count,
                    "timeout": t.timeout,
                }
                for t in self.tools
            ],
            "reasoning": self.reasoning,
            "estimated_duration": self.estimated_duration,
            "risk_level": self.risk_level,
        }


@dataclass
class OrchestrationResult:
    """Outcome of executing a tool chain.

    ``results`` and ``errors`` are keyed by tool name; on failure both may
    be partially filled.
    """

    success: bool
    tool_chain: ToolChain
    results: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    duration: float = 0.0
    aborted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "results": self.results,
            "errors": self.errors,
            "duration": round(self.duration, 3),
            "aborted": self.aborted,
            "tool_chain": self.tool_chain.to_dict(),
        }


@dataclass(frozen=True)
class ApprovalRequest:
    """Request for user approval of a shell step."""

    tool: str
    command: str
    risk_level: RiskLevel
    reason: str | None = None
    directory: str | None = None
