"""Shared test fixtures and utilities for vibe-guard tests.

Provides:
- MockContext for isolating tests from global state
- Temporary workspace fixtures
- Audit log, executor and orchestrator fixtures
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from vibe_guard.config import (
    VibeSettings,
    reload_settings,
    set_context_settings,
    set_settings,
)
from vibe_guard.execution import ExecutorConfig, ProcessExecutor
from vibe_guard.orchestration import ToolOrchestrator
from vibe_guard.security import AuditLog


class MockContext:
    """Context manager for isolating tests from global state.

    Handles:
    - Clearing VIBE_* environment variables
    - Providing a temporary workspace directory
    - Installing settings that point at the workspace

    Usage:
        with MockContext(dry_run=True) as ctx:
            settings = ctx.settings
            workspace = ctx.workspace_dir
    """

    def __init__(self, **settings_kwargs):
        self._settings_kwargs = settings_kwargs
        self._temp_dir: tempfile.TemporaryDirectory | None = None
        self._settings: VibeSettings | None = None
        self._original_env: dict[str, str] = {}

    def __enter__(self) -> "MockContext":
        self._temp_dir = tempfile.TemporaryDirectory()
        workspace_dir = Path(self._temp_dir.name)

        for var in [v for v in os.environ if v.startswith("VIBE_")]:
            self._original_env[var] = os.environ.pop(var)

        self._settings = VibeSettings(workspace_dir=workspace_dir, **self._settings_kwargs)
        set_settings(self._settings)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        set_context_settings(None)
        os.environ.update(self._original_env)
        reload_settings()
        if self._temp_dir:
            self._temp_dir.cleanup()

    @property
    def settings(self) -> VibeSettings:
        if self._settings is None:
            raise RuntimeError("MockContext not entered")
        return self._settings

    @property
    def workspace_dir(self) -> Path:
        if self._temp_dir is None:
            raise RuntimeError("MockContext not entered")
        return Path(self._temp_dir.name)


@pytest.fixture
def mock_context() -> Generator[MockContext, None, None]:
    """Fixture providing an isolated test context."""
    with MockContext() as ctx:
        yield ctx


@pytest.fixture
def dry_run_context() -> Generator[MockContext, None, None]:
    """Fixture providing an isolated context with dry-run enabled."""
    with MockContext(dry_run=True) as ctx:
        yield ctx


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Fixture providing a temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir(parents=True)
    return workspace


@pytest.fixture
def audit_log(mock_context: MockContext) -> AuditLog:
    """Audit log writing to the isolated workspace."""
    return AuditLog(settings=mock_context.settings)


@pytest.fixture
def executor(mock_context: MockContext, audit_log: AuditLog) -> ProcessExecutor:
    """Executor with auditing and a short kill grace period."""
    return ProcessExecutor(
        audit_log=audit_log,
        config=ExecutorConfig(kill_grace_period=0.5),
        settings=mock_context.settings,
    )


@pytest.fixture
def approve_all():
    """Approver that accepts every request and records it."""

    def approver(request):
        approver.requests.append(request)
        return True

    approver.requests = []
    return approver


@pytest.fixture
def orchestrator(
    mock_context: MockContext,
    executor: ProcessExecutor,
    approve_all,
) -> ToolOrchestrator:
    """Orchestrator with fast retries and recovery."""
    return ToolOrchestrator(
        executor,
        settings=mock_context.settings,
        approver=approve_all,
        recovery_delay=0.01,
        retry_base_delay=0.01,
    )
