"""Tool registry for orchestrated tool handlers.

Provides:
- ToolDefinition: Handler plus its default per-attempt timeout
- ToolRegistry: Registry for tool lookup by name
- register_tool: Decorator registering into the default registry
"""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

ToolHandler = Callable[..., Awaitable[dict[str, Any]]]

DEFAULT_TOOL_TIMEOUT = 10.0


@dataclass
class ToolDefinition:
    """Registered tool.

    Attributes:
        name: Tool name (defaults to function name)
        description: Human-readable description
        handler: Async callable ``handler(params, ctx) -> dict``
        timeout_seconds: Per-attempt timeout the planner assigns to steps
    """

    name: str
    description: str
    handler: ToolHandler
    timeout_seconds: float = DEFAULT_TOOL_TIMEOUT

    def __post_init__(self):
        if not inspect.iscoroutinefunction(self.handler):
            raise TypeError(f"Tool handler for {self.name} must be async")


class ToolRegistry:
    """Registry for managing and discovering tools."""

    def __init__(self):
        self._tools: dict[str, ToolDefinition] = {}

    def register(
        self,
        func: ToolHandler | None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        timeout_seconds: float = DEFAULT_TOOL_TIMEOUT,
    ) -> Callable[..., Any]:
        """Register a tool handler.

        Can be used as a decorator:
            @registry.register(timeout_seconds=30)
            async def run_tests(params: RunTestsParams, ctx: ToolContext) -> dict:
                ...

        Or called directly:
            registry.register(run_tests, timeout_seconds=30)
        """

        def decorator(f: ToolHandler) -> ToolHandler:
            tool_name = name or f.__name__
            tool_desc = description or (f.__doc__ or "").split("\n")[0].strip()

            self._tools[tool_name] = ToolDefinition(
                name=tool_name,
                description=tool_desc,
                handler=f,
                timeout_seconds=timeout_seconds,
            )
            return f

        if func is not None:
            return decorator(func)
        return decorator

    def get(self, name: str) -> ToolDefinition | None:
        """Get a tool definition by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[ToolDefinition]:
        """List all registered tools."""
        return list(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools


# Global registry instance
_default_registry = ToolRegistry()


def get_registry() -> ToolRegistry:
    """Get the default tool registry (populated by the handlers module)."""
    return _default_registry


def register_tool(
    func: ToolHandler | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
    timeout_seconds: float = DEFAULT_TOOL_TIMEOUT,
) -> Callable[..., Any]:
    """Register a tool with the default registry.

    Decorator for registering tools:
        @register_tool(timeout_seconds=30)
        async def get_project_info(params, ctx) -> dict:
            '''Summarize the project in the workspace.'''
            ...
    """
    return _default_registry.register(
        func,
        name=name,
        description=description,
        timeout_seconds=timeout_seconds,
    )
