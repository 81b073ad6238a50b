"""Tool handlers available to tool chains.

Provides:
- read_file / write_file / create_directory / list_directory
- get_project_info / check_dependency
- run_shell_command / run_tests / run_lint (through the ProcessExecutor)

Handlers take ``(params, ctx)``, return a dict with ``success: True`` and
raise ToolError on failure.
"""

import inspect
import json
import re
import shutil
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable

from vibe_guard.errors import ErrorCode, ErrorKind, ToolError
from vibe_guard.execution.executor import ProcessExecutor
from vibe_guard.execution.models import ExecutionOptions, ShellResult
from vibe_guard.logging import Loggers
from vibe_guard.orchestration.models import (
    ApprovalRequest,
    CheckDependencyParams,
    CreateDirectoryParams,
    ListDirectoryParams,
    ProjectInfoParams,
    ReadFileParams,
    RunLintParams,
    RunTestsParams,
    ShellCommandParams,
    WriteFileParams,
)
from vibe_guard.orchestration.registry import register_tool
from vibe_guard.security.secrets import mask_secrets

logger = Loggers.orchestration()

MAX_READ_LINES = 2000

# Distribution name at the start of a PEP 508 requirement
_REQUIREMENT_NAME = re.compile(r"[A-Za-z0-9._-]*")

Approver = Callable[[ApprovalRequest], "bool | Awaitable[bool]"]

# Executor failure kind -> (error code, recoverable)
_SHELL_ERROR_CODES: dict[ErrorKind, tuple[str, bool]] = {
    ErrorKind.BLOCKED_BY_POLICY: (ErrorCode.BLOCKED, False),
    ErrorKind.VALIDATION_REJECTED: (ErrorCode.DRY_RUN, False),
    ErrorKind.TIMEOUT: (ErrorCode.TIMEOUT, True),
    ErrorKind.CANCELLED: (ErrorCode.COMMAND_FAILED, False),
    ErrorKind.SPAWN_FAILURE: (ErrorCode.COMMAND_FAILED, True),
    ErrorKind.NON_ZERO_EXIT: (ErrorCode.COMMAND_FAILED, False),
}


async def request_approval(approver: Approver | None, request: ApprovalRequest) -> bool:
    """Ask the approver; no approver means denied."""
    if approver is None:
        return False
    decision = approver(request)
    if inspect.isawaitable(decision):
        decision = await decision
    return bool(decision)


@dataclass
class ToolContext:
    """Collaborators shared by handlers during one chain execution.

    Attributes:
        executor: Process executor for shell-backed tools.
        workspace_dir: Base for relative paths.
        approver: Callback for commands requiring approval.
        timeout: Timeout passed to the executor for shell commands.
    """

    executor: ProcessExecutor
    workspace_dir: Path
    approver: Approver | None = None
    timeout: float | None = None

    def resolve(self, path: str | None) -> Path:
        """Resolve a tool path against the workspace."""
        candidate = Path(path or ".").expanduser()
        if not candidate.is_absolute():
            candidate = self.workspace_dir / candidate
        return candidate.resolve()

    async def run_command(
        self,
        command: str,
        directory: str | None = None,
        tool_name: str = "run_shell_command",
    ) -> ShellResult:
        """Validate, obtain approval if needed, and execute a command.

        Raises:
            ToolError: If approval is denied or the command fails.
        """
        cwd = self.resolve(directory)
        validation = self.executor.validator.validate(command)

        if validation.allowed and validation.requires_approval:
            request = ApprovalRequest(
                tool=tool_name,
                command=command,
                risk_level=validation.risk_level,
                reason=validation.reason,
                directory=str(cwd),
            )
            if not await request_approval(self.approver, request):
                logger.info(
                    "approval_denied",
                    tool=tool_name,
                    command=mask_secrets(command),
                    risk_level=validation.risk_level.value,
                )
                raise ToolError(
                    message=f"Approval denied for command: {mask_secrets(command)}",
                    error_code=ErrorCode.APPROVAL_DENIED,
                    details={"risk_level": validation.risk_level.value},
                    tool_name=tool_name,
                )

        result = await self.executor.execute(
            command, ExecutionOptions(cwd=str(cwd), timeout=self.timeout)
        )
        if not result.success:
            raise _shell_error(result, tool_name)
        return result


def _shell_error(result: ShellResult, tool_name: str) -> ToolError:
    code, recoverable = _SHELL_ERROR_CODES.get(
        result.error_kind, (ErrorCode.COMMAND_FAILED, False)
    )
    message = result.error or "Command failed"
    if result.stderr and result.stderr not in message:
        message = f"{message}: {result.stderr.strip()[-500:]}"
    return ToolError(
        message=message,
        error_code=code,
        recoverable=recoverable,
        details=result.to_dict(),
        tool_name=tool_name,
    )


def _shell_output(result: ShellResult) -> dict[str, Any]:
    return {
        "success": True,
        "command": result.command,
        "directory": result.directory,
        "stdout": result.stdout,
        "stderr": result.stderr,
        "exit_code": result.exit_code,
        "duration": round(result.duration, 3),
        "background_pids": list(result.background_pids),
    }


def _load_package_json(directory: Path) -> dict[str, Any] | None:
    package_file = directory / "package.json"
    if not package_file.is_file():
        return None
    try:
        return json.loads(package_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("package_json_unreadable", path=str(package_file), error=str(e))
        return None


def _load_pyproject(directory: Path) -> dict[str, Any] | None:
    pyproject = directory / "pyproject.toml"
    if not pyproject.is_file():
        return None
    try:
        with open(pyproject, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning("pyproject_unreadable", path=str(pyproject), error=str(e))
        return None


# ---------------------------------------------------------------------------
# File tools
# ---------------------------------------------------------------------------


@register_tool(description="Read the contents of a file")
async def read_file(params: ReadFileParams, ctx: ToolContext) -> dict[str, Any]:
    """Read a text file, truncated to the first 2000 lines.

    Raises:
        ToolError: If the path is missing, not a file, binary or unreadable.
    """
    file_path = ctx.resolve(params.path)

    if not file_path.exists():
        raise ToolError(
            message=f"File not found: {params.path}",
            error_code=ErrorCode.NOT_FOUND,
            details={"path": str(file_path)},
        )
    if not file_path.is_file():
        raise ToolError(
            message=f"Not a file: {params.path}",
            error_code=ErrorCode.INVALID_INPUT,
            details={"path": str(file_path)},
        )

    try:
        content = file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        raise ToolError(
            message=f"Cannot read file as text (binary file?): {params.path}",
            error_code=ErrorCode.INVALID_INPUT,
            details={"path": str(file_path)},
        )
    except PermissionError:
        raise ToolError(
            message=f"Permission denied: {params.path}",
            error_code=ErrorCode.PERMISSION_DENIED,
            details={"path": str(file_path)},
        )

    lines = content.splitlines(keepends=True)
    truncated = len(lines) > MAX_READ_LINES
    if truncated:
        content = "".join(lines[:MAX_READ_LINES])

    return {
        "success": True,
        "content": content,
        "path": str(file_path),
        "total_lines": len(lines),
        "truncated": truncated,
    }


@register_tool(description="Write content to a file")
async def write_file(params: WriteFileParams, ctx: ToolContext) -> dict[str, Any]:
    """Write content to a file, creating parent directories.

    Raises:
        ToolError: If no path is given or the write fails.
    """
    if not params.file_path:
        raise ToolError(
            message="write_file requires a file_path",
            error_code=ErrorCode.INVALID_INPUT,
        )

    file_path = ctx.resolve(params.file_path)
    existed = file_path.exists()
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(params.content or "", encoding="utf-8")
    except PermissionError:
        raise ToolError(
            message=f"Permission denied: {params.file_path}",
            error_code=ErrorCode.PERMISSION_DENIED,
            details={"path": str(file_path)},
        )
    except OSError as e:
        raise ToolError(
            message=f"Failed to write file: {e}",
            error_code=ErrorCode.INTERNAL_ERROR,
            recoverable=True,
            details={"path": str(file_path)},
        )

    return {
        "success": True,
        "path": str(file_path),
        "size": file_path.stat().st_size,
        "created": not existed,
    }


@register_tool(description="Create a directory (and parents)", timeout_seconds=15.0)
async def create_directory(params: CreateDirectoryParams, ctx: ToolContext) -> dict[str, Any]:
    dir_path = ctx.resolve(params.dir_path)
    if dir_path.exists() and not dir_path.is_dir():
        raise ToolError(
            message=f"Path exists and is not a directory: {params.dir_path}",
            error_code=ErrorCode.INVALID_INPUT,
            details={"path": str(dir_path)},
        )

    existed = dir_path.exists()
    try:
        dir_path.mkdir(parents=True, exist_ok=True)
    except PermissionError:
        raise ToolError(
            message=f"Permission denied: {params.dir_path}",
            error_code=ErrorCode.PERMISSION_DENIED,
            details={"path": str(dir_path)},
        )
    return {"success": True, "path": str(dir_path), "created": not existed}


@register_tool(description="List directory contents, directories first")
async def list_directory(params: ListDirectoryParams, ctx: ToolContext) -> dict[str, Any]:
    dir_path = ctx.resolve(params.dir_path)
    if not dir_path.is_dir():
        raise ToolError(
            message=f"Directory not found: {params.dir_path}",
            error_code=ErrorCode.NOT_FOUND,
            details={"path": str(dir_path)},
        )

    entries = [
        entry
        for entry in dir_path.iterdir()
        if params.show_hidden or not entry.name.startswith(".")
    ]
    entries.sort(key=lambda e: (not e.is_dir(), e.name))
    lines = [f"[DIR] {e.name}" if e.is_dir() else e.name for e in entries]

    return {
        "success": True,
        "path": str(dir_path),
        "entries": lines,
        "count": len(lines),
    }


# ---------------------------------------------------------------------------
# Project inspection
# ---------------------------------------------------------------------------

_PROJECT_MARKERS = {
    "package.json": "node",
    "pyproject.toml": "python",
    "setup.py": "python",
    "requirements.txt": "python",
    "Cargo.toml": "rust",
    "go.mod": "go",
    "pom.xml": "java",
}


@register_tool(description="Summarize the project in the workspace", timeout_seconds=30.0)
async def get_project_info(params: ProjectInfoParams, ctx: ToolContext) -> dict[str, Any]:
    """Detect project type, name, scripts and dependencies from manifest files."""
    root = ctx.resolve(params.directory)
    if not root.is_dir():
        raise ToolError(
            message=f"Directory not found: {params.directory}",
            error_code=ErrorCode.NOT_FOUND,
            details={"path": str(root)},
        )

    types = sorted(
        {kind for marker, kind in _PROJECT_MARKERS.items() if (root / marker).exists()}
    )
    info: dict[str, Any] = {
        "success": True,
        "path": str(root),
        "name": root.name,
        "project_types": types,
        "git": (root / ".git").exists(),
    }

    package = _load_package_json(root)
    if package is not None:
        info["name"] = package.get("name", root.name)
        info["version"] = package.get("version")
        info["scripts"] = sorted(package.get("scripts", {}))
        info["dependencies"] = sorted(
            {**package.get("dependencies", {}), **package.get("devDependencies", {})}
        )

    pyproject = _load_pyproject(root)
    if pyproject is not None:
        project = pyproject.get("project", {})
        info["name"] = project.get("name", info["name"])
        info["version"] = project.get("version", info.get("version"))
        declared = {_REQUIREMENT_NAME.match(r).group(0) for r in project.get("dependencies", [])}
        info["dependencies"] = sorted(set(info.get("dependencies", [])) | declared)

    return info


@register_tool(description="Check whether a dependency is declared or installed")
async def check_dependency(params: CheckDependencyParams, ctx: ToolContext) -> dict[str, Any]:
    """Look for a package in package.json, pyproject.toml or on PATH."""
    if not params.package_name:
        raise ToolError(
            message="check_dependency requires a package_name",
            error_code=ErrorCode.INVALID_INPUT,
        )

    root = ctx.resolve(params.directory)
    name = params.package_name

    package = _load_package_json(root)
    if package is not None:
        for section in ("dependencies", "devDependencies", "peerDependencies"):
            if name in package.get(section, {}):
                return {
                    "success": True,
                    "package_name": name,
                    "installed": (root / "node_modules" / name).exists(),
                    "declared": True,
                    "version": package[section][name],
                    "source": f"package.json:{section}",
                }

    pyproject = _load_pyproject(root)
    if pyproject is not None:
        for requirement in pyproject.get("project", {}).get("dependencies", []):
            if _REQUIREMENT_NAME.match(requirement).group(0) == name:
                return {
                    "success": True,
                    "package_name": name,
                    "installed": None,
                    "declared": True,
                    "version": requirement,
                    "source": "pyproject.toml",
                }

    binary = shutil.which(name)
    return {
        "success": True,
        "package_name": name,
        "installed": binary is not None,
        "declared": False,
        "version": None,
        "source": binary,
    }


# ---------------------------------------------------------------------------
# Shell-backed tools
# ---------------------------------------------------------------------------


@register_tool(description="Run a shell command", timeout_seconds=60.0)
async def run_shell_command(params: ShellCommandParams, ctx: ToolContext) -> dict[str, Any]:
    result = await ctx.run_command(params.command, params.directory, tool_name="run_shell_command")
    return _shell_output(result)


def detect_test_command(root: Path) -> str | None:
    """Test command for the project at ``root``, if one can be inferred."""
    package = _load_package_json(root)
    if package and "test" in package.get("scripts", {}):
        return "npm test"
    pyproject = _load_pyproject(root)
    if pyproject is not None or (root / "tests").is_dir():
        return "pytest -q"
    return None


def detect_lint_command(root: Path) -> str | None:
    """Lint command for the project at ``root``, if one can be inferred."""
    package = _load_package_json(root)
    if package and "lint" in package.get("scripts", {}):
        return "npm run lint"
    pyproject = _load_pyproject(root)
    if pyproject is not None and "ruff" in pyproject.get("tool", {}):
        return "ruff check ."
    return None


@register_tool(description="Run the project's test suite", timeout_seconds=30.0)
async def run_tests(params: RunTestsParams, ctx: ToolContext) -> dict[str, Any]:
    command = params.command or detect_test_command(ctx.resolve(params.directory))
    if command is None:
        raise ToolError(
            message="No test command detected for this project",
            error_code=ErrorCode.NOT_FOUND,
            tool_name="run_tests",
        )
    result = await ctx.run_command(command, params.directory, tool_name="run_tests")
    return _shell_output(result)


@register_tool(description="Run the project's linter", timeout_seconds=20.0)
async def run_lint(params: RunLintParams, ctx: ToolContext) -> dict[str, Any]:
    command = params.command or detect_lint_command(ctx.resolve(params.directory))
    if command is None:
        raise ToolError(
            message="No lint command detected for this project",
            error_code=ErrorCode.NOT_FOUND,
            tool_name="run_lint",
        )
    result = await ctx.run_command(command, params.directory, tool_name="run_lint")
    return _shell_output(result)
