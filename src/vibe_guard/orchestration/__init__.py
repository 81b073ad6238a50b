"""Tool chain planning and execution.

Importing this package registers the built-in tool handlers in the default
registry.
"""

from vibe_guard.orchestration.handlers import ToolContext, request_approval
from vibe_guard.orchestration.models import (
    ApprovalRequest,
    CheckDependencyParams,
    CreateDirectoryParams,
    ListDirectoryParams,
    OrchestrationResult,
    ProjectInfoParams,
    ReadFileParams,
    RunLintParams,
    RunTestsParams,
    ShellCommandParams,
    TOOL_PARAM_TYPES,
    ToolChain,
    ToolExecution,
    WriteFileParams,
)
from vibe_guard.orchestration.orchestrator import (
    StepOutcome,
    ToolOrchestrator,
    orchestrate_tools,
)
from vibe_guard.orchestration.planner import RequestAnalysis, RequestPlanner
from vibe_guard.orchestration.registry import (
    ToolDefinition,
    ToolRegistry,
    get_registry,
    register_tool,
)

__all__ = [
    # Orchestrator
    "ToolOrchestrator",
    "StepOutcome",
    "orchestrate_tools",
    # Planning
    "RequestPlanner",
    "RequestAnalysis",
    # Registry
    "ToolRegistry",
    "ToolDefinition",
    "get_registry",
    "register_tool",
    "ToolContext",
    "request_approval",
    # Data models
    "ToolChain",
    "ToolExecution",
    "OrchestrationResult",
    "ApprovalRequest",
    "TOOL_PARAM_TYPES",
    "ReadFileParams",
    "WriteFileParams",
    "CreateDirectoryParams",
    "ListDirectoryParams",
    "ProjectInfoParams",
    "CheckDependencyParams",
    "ShellCommandParams",
    "RunTestsParams",
    "RunLintParams",
]
