"""Keyword-based request planning.

Turns a free-text request into a ToolChain using a small set of templates.
The planner is replaceable: ToolOrchestrator accepts any object with the
same ``analyze`` / ``build`` methods.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Literal

from vibe_guard.orchestration.models import (
    ChainRisk,
    CheckDependencyParams,
    CreateDirectoryParams,
    ProjectInfoParams,
    ReadFileParams,
    RunLintParams,
    RunTestsParams,
    ShellCommandParams,
    ToolChain,
    ToolExecution,
    ToolParams,
    WriteFileParams,
)
from vibe_guard.orchestration.registry import DEFAULT_TOOL_TIMEOUT, ToolRegistry, get_registry

Complexity = Literal["simple", "medium", "complex"]

DEFAULT_PROJECT_NAME = "new-project"

# Substring triggers for coarse keywords
KEYWORD_TRIGGERS: dict[str, tuple[str, ...]] = {
    "create": ("create", "build", "generate"),
    "read": ("read", "analyze", "check"),
    "write": ("write", "edit", "modify"),
    "execute": ("run", "execute", "install"),
    "test": ("test", "lint", "check"),
}

# Whole-word operation patterns
OPERATION_PATTERNS: dict[str, re.Pattern] = {
    "create": re.compile(r"\b(create|build|make|generate)\b"),
    "read": re.compile(r"\b(read|analyze|check|examine)\b"),
    "write": re.compile(r"\b(write|edit|modify|update)\b"),
    "execute": re.compile(r"\b(run|execute|install|setup)\b"),
    "test": re.compile(r"\b(test|lint|validate)\b"),
}

DOMAIN_TRIGGERS: dict[str, tuple[str, ...]] = {
    "frontend": ("react", "vue", "angular"),
    "backend": ("node", "express", "api"),
    "testing": ("test", "spec", "jest"),
    "devops": ("deploy", "docker", "kubernetes"),
}

STARTER_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Simple HTML Page</title>
    <style>
        body {
            font-family: Arial, sans-serif;
            max-width: 800px;
            margin: 0 auto;
            padding: 2rem;
            line-height: 1.6;
        }
        h1 { color: #333; }
        p { color: #666; }
    </style>
</head>
<body>
    <h1>Welcome to My HTML Page</h1>
    <p>This is a simple HTML page.</p>
    <p>Edit this file to customize your content!</p>
</body>
</html>
"""


@dataclass(frozen=True)
class RequestAnalysis:
    """What a request asks for."""

    keywords: tuple[str, ...]
    operations: tuple[str, ...]
    domains: tuple[str, ...]
    complexity: Complexity


def _starter_package_json(project_name: str) -> str:
    return json.dumps(
        {
            "name": project_name,
            "version": "0.1.0",
            "private": True,
            "scripts": {},
        },
        indent=2,
    ) + "\n"


class RequestPlanner:
    """Maps requests to tool chains by keyword analysis.

    Step timeouts come from the registered tool definitions.
    """

    def __init__(self, registry: ToolRegistry | None = None):
        self.registry = registry if registry is not None else get_registry()

    def create_tool_execution(
        self,
        tool_name: str,
        params: ToolParams,
        retry_count: int = 1,
        depends_on: tuple[str, ...] = (),
    ) -> ToolExecution:
        definition = self.registry.get(tool_name)
        return ToolExecution(
            tool_name=tool_name,
            params=params,
            depends_on=depends_on,
            retry_count=retry_count,
            timeout=definition.timeout_seconds if definition else DEFAULT_TOOL_TIMEOUT,
        )

    def analyze(self, request: str) -> RequestAnalysis:
        """Extract keywords, operations, domains and complexity."""
        lower = request.lower()

        keywords = tuple(
            name
            for name, triggers in KEYWORD_TRIGGERS.items()
            if any(t in lower for t in triggers)
        )
        operations = tuple(
            name for name, pattern in OPERATION_PATTERNS.items() if pattern.search(lower)
        )
        domains = tuple(
            name
            for name, triggers in DOMAIN_TRIGGERS.items()
            if any(t in lower for t in triggers)
        )

        complexity: Complexity = "simple"
        if len(operations) > 2 or "project" in lower or "application" in lower:
            complexity = "complex"
        elif len(operations) > 1:
            complexity = "medium"

        return RequestAnalysis(
            keywords=keywords,
            operations=operations,
            domains=domains,
            complexity=complexity,
        )

    def build(
        self,
        analysis: RequestAnalysis,
        context: dict[str, Any] | None = None,
        request: str = "",
    ) -> ToolChain:
        """Build a chain from an analysis.

        Context keys: file_path, content, new_content, project_name,
        package_json.
        """
        context = context or {}
        steps: list[ToolExecution] = []
        reasoning: list[str] = []
        risk: ChainRisk = "low"
        ops = analysis.operations

        if analysis.complexity == "simple":
            if "read" in ops:
                steps.append(
                    self.create_tool_execution(
                        "read_file", ReadFileParams(path=context.get("file_path") or ".")
                    )
                )
                reasoning.append("Single file read operation")
            elif "write" in ops:
                steps.append(
                    self.create_tool_execution(
                        "write_file",
                        WriteFileParams(
                            file_path=context.get("file_path"),
                            content=context.get("content"),
                        ),
                    )
                )
                reasoning.append("Single file write operation")
                risk = "medium"
            elif "create" in ops and "html" in request.lower():
                steps.append(
                    self.create_tool_execution(
                        "write_file",
                        WriteFileParams(file_path="index.html", content=STARTER_HTML),
                    )
                )
                reasoning.append("Create a simple HTML page with basic styling")

        elif analysis.complexity == "complex":
            project = context.get("project_name") or DEFAULT_PROJECT_NAME

            if "create" in ops and "frontend" in analysis.domains:
                steps.append(
                    self.create_tool_execution(
                        "get_project_info", ProjectInfoParams(), retry_count=2
                    )
                )
                steps.append(
                    self.create_tool_execution(
                        "check_dependency",
                        CheckDependencyParams(package_name="react"),
                        retry_count=1,
                    )
                )
                reasoning.append("Research project requirements and dependencies before creation")

            if "create" in ops:
                steps.append(
                    self.create_tool_execution(
                        "create_directory",
                        CreateDirectoryParams(dir_path=project),
                        retry_count=1,
                    )
                )
                steps.append(
                    self.create_tool_execution(
                        "write_file",
                        WriteFileParams(
                            file_path=f"{project}/package.json",
                            content=context.get("package_json") or _starter_package_json(project),
                        ),
                        retry_count=2,
                        depends_on=("create_directory",),
                    )
                )
                reasoning.append("Create project structure and core files")
                risk = "high"

            if "execute" in ops:
                steps.append(
                    self.create_tool_execution(
                        "run_shell_command",
                        ShellCommandParams(
                            command="npm install",
                            directory=context.get("project_name"),
                        ),
                        retry_count=1,
                    )
                )
                reasoning.append("Install dependencies and setup project")
                risk = "high"

            if "test" in ops:
                steps.append(
                    self.create_tool_execution(
                        "run_tests",
                        RunTestsParams(directory=context.get("project_name")),
                        retry_count=2,
                    )
                )
                steps.append(
                    self.create_tool_execution(
                        "run_lint",
                        RunLintParams(directory=context.get("project_name")),
                        retry_count=1,
                    )
                )
                reasoning.append("Verify project works correctly")

        elif "read" in ops and "write" in ops:
            steps.append(
                self.create_tool_execution(
                    "read_file", ReadFileParams(path=context.get("file_path"))
                )
            )
            steps.append(
                self.create_tool_execution(
                    "write_file",
                    WriteFileParams(
                        file_path=context.get("file_path"),
                        content=context.get("new_content"),
                    ),
                    retry_count=1,
                    depends_on=("read_file",),
                )
            )
            reasoning.append("Read existing content then modify")
            risk = "medium"

        return ToolChain(
            tools=tuple(steps),
            reasoning=". ".join(reasoning),
            estimated_duration=sum(step.timeout for step in steps),
            risk_level=risk,
        )
