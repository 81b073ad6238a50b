"""Configuration for the process executor.

Provides defaults for timeouts, retries, output limits and the SIGKILL
escalation grace period. Loadable from a YAML file.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from vibe_guard.config import STATE_DIR_NAME
from vibe_guard.logging import Loggers

logger = Loggers.config()


@dataclass
class ExecutorConfig:
    """Executor defaults, overridable per call via ExecutionOptions.

    Attributes:
        timeout_seconds: Default timeout (None = wait indefinitely).
        retry_count: Default additional attempts after a retryable failure.
        retry_delay: Default base backoff in seconds.
        max_output_chars: Output size before truncation.
        kill_grace_period: Seconds between SIGTERM and SIGKILL on timeout
            (None disables escalation).
        chunk_size: Bytes per read from stdout/stderr.
        reap_timeout: Seconds to wait for output pipes after the process exits.
    """

    timeout_seconds: float | None = None
    retry_count: int = 0
    retry_delay: float = 1.0
    max_output_chars: int = 50000
    kill_grace_period: float | None = 2.0
    chunk_size: int = 4096
    reap_timeout: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutorConfig":
        """Create config from dictionary.

        Args:
            data: Configuration dictionary.

        Returns:
            ExecutorConfig instance.
        """
        defaults = cls()
        return cls(
            timeout_seconds=data.get("timeout_seconds", defaults.timeout_seconds),
            retry_count=data.get("retry_count", defaults.retry_count),
            retry_delay=data.get("retry_delay", defaults.retry_delay),
            max_output_chars=data.get("max_output_chars", defaults.max_output_chars),
            kill_grace_period=data.get("kill_grace_period", defaults.kill_grace_period),
            chunk_size=data.get("chunk_size", defaults.chunk_size),
            reap_timeout=data.get("reap_timeout", defaults.reap_timeout),
        )

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ExecutorConfig":
        """Load config from YAML file (defaults if the file is missing).

        Args:
            path: Path to YAML configuration file.

        Returns:
            ExecutorConfig instance.
        """
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        logger.debug("executor_config_loaded", path=str(path))
        return cls.from_dict(data.get("executor", data))

    @classmethod
    def load_default(cls, workspace_dir: Path | None = None) -> "ExecutorConfig":
        """Load ``<workspace>/.vibe/executor.yaml`` if present."""
        workspace_dir = workspace_dir or Path.cwd()
        return cls.from_yaml(workspace_dir / STATE_DIR_NAME / "executor.yaml")

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "timeout_seconds": self.timeout_seconds,
            "retry_count": self.retry_count,
            "retry_delay": self.retry_delay,
            "max_output_chars": self.max_output_chars,
            "kill_grace_period": self.kill_grace_period,
            "chunk_size": self.chunk_size,
            "reap_timeout": self.reap_timeout,
        }
