"""Tests for settings and executor configuration."""

import os
from pathlib import Path
from unittest.mock import patch

from vibe_guard.config import (
    SettingsContext,
    VibeSettings,
    get_context_settings,
    get_settings,
    reload_settings,
    set_settings,
)
from vibe_guard.execution.config import ExecutorConfig


class TestVibeSettings:
    """Tests for VibeSettings."""

    def test_default_values(self, temp_workspace: Path):
        with patch.dict(os.environ, {}, clear=True):
            settings = VibeSettings(workspace_dir=temp_workspace)

        assert settings.dry_run is False
        assert settings.audit is True
        assert settings.default_timeout is None
        assert settings.log_level == "warning"
        assert settings.log_format == "console"

    def test_derived_paths(self, temp_workspace: Path):
        with patch.dict(os.environ, {}, clear=True):
            settings = VibeSettings(workspace_dir=temp_workspace)

        assert settings.state_dir == temp_workspace / ".vibe"
        assert settings.audit_path == temp_workspace / ".vibe" / "audit.log"

    def test_audit_file_override(self, temp_workspace: Path):
        settings = VibeSettings(workspace_dir=temp_workspace, audit_file="~/audit.jsonl")

        assert settings.audit_path == Path.home() / "audit.jsonl"

    def test_environment_variables(self, temp_workspace: Path):
        env = {"VIBE_DRY_RUN": "true", "VIBE_AUDIT": "false", "VIBE_DEFAULT_TIMEOUT": "12.5"}
        with patch.dict(os.environ, env, clear=True):
            settings = VibeSettings(workspace_dir=temp_workspace)

        assert settings.dry_run is True
        assert settings.audit is False
        assert settings.default_timeout == 12.5


class TestSettingsAccessors:
    """Tests for global and context-based settings."""

    def test_set_and_get(self, mock_context):
        assert get_settings() is mock_context.settings

    def test_context_overrides_global(self, mock_context, temp_workspace: Path):
        override = VibeSettings(workspace_dir=temp_workspace, dry_run=True)

        with SettingsContext(override):
            assert get_settings() is override
            assert get_context_settings() is override

        assert get_settings() is mock_context.settings

    def test_reload_clears_singleton(self, mock_context, temp_workspace: Path):
        set_settings(VibeSettings(workspace_dir=temp_workspace))
        first = get_settings()

        assert reload_settings() is not first


class TestExecutorConfig:
    """Tests for ExecutorConfig loading."""

    def test_defaults(self):
        config = ExecutorConfig()

        assert config.kill_grace_period == 2.0
        assert config.chunk_size == 4096
        assert config.timeout_seconds is None

    def test_from_dict_partial(self):
        config = ExecutorConfig.from_dict({"retry_count": 2, "kill_grace_period": None})

        assert config.retry_count == 2
        assert config.kill_grace_period is None
        assert config.max_output_chars == 50000

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "executor.yaml"
        path.write_text("executor:\n  timeout_seconds: 30\n  retry_delay: 0.5\n")

        config = ExecutorConfig.from_yaml(path)

        assert config.timeout_seconds == 30
        assert config.retry_delay == 0.5

    def test_from_yaml_missing_file(self, tmp_path: Path):
        assert ExecutorConfig.from_yaml(tmp_path / "nope.yaml") == ExecutorConfig()

    def test_load_default_from_workspace(self, temp_workspace: Path):
        state_dir = temp_workspace / ".vibe"
        state_dir.mkdir()
        (state_dir / "executor.yaml").write_text("max_output_chars: 100\n")

        assert ExecutorConfig.load_default(temp_workspace).max_output_chars == 100

    def test_round_trip_dict(self):
        config = ExecutorConfig(timeout_seconds=5, retry_count=1)

        assert ExecutorConfig.from_dict(config.to_dict()) == config
