"""Settings for the vibe-guard engine.

Provides VibeSettings plus global and context-based accessors:

    1. Global singleton (simple cases):
        set_settings(my_settings)
        settings = get_settings()

    2. Context-based (isolated contexts, tests):
        with SettingsContext(my_settings):
            settings = get_settings()  # Returns my_settings

Settings Loading Priority (highest to lowest):
    1. Constructor arguments
    2. Environment variables (VIBE_* prefix, e.g. VIBE_DRY_RUN, VIBE_AUDIT)
    3. Project config (./.vibe/settings.json)
    4. User config (~/.vibe/settings.json)
    5. .env file
    6. Default values
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Generator, Literal, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings as PydanticBaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

__all__ = [
    "VibeSettings",
    "SettingsContext",
    "get_settings",
    "set_settings",
    "set_context_settings",
    "get_context_settings",
    "reload_settings",
]

# Directory (relative to the workspace) holding engine state
STATE_DIR_NAME = ".vibe"
AUDIT_FILE_NAME = "audit.log"


def _get_json_config_source(
    settings_cls: Type[PydanticBaseSettings],
    json_file: Path,
) -> PydanticBaseSettingsSource | None:
    """Create a JSON config source if the file exists.

    Args:
        settings_cls: The settings class
        json_file: Path to JSON config file

    Returns:
        JsonConfigSettingsSource if file exists, None otherwise
    """
    if not json_file.exists():
        return None

    from pydantic_settings import JsonConfigSettingsSource

    return JsonConfigSettingsSource(settings_cls, json_file=json_file)


class VibeSettings(PydanticBaseSettings):
    """Settings for command validation, execution and auditing.

    Environment variables use the ``VIBE_`` prefix:
    ``VIBE_DRY_RUN=true`` blocks write-classified operations and
    ``VIBE_AUDIT=false`` disables the audit log entirely.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    workspace_dir: Path = Field(
        default_factory=Path.cwd,
        title="Workspace Directory",
        description="Workspace root; engine state lives under <workspace>/.vibe",
    )
    dry_run: bool = Field(
        default=False,
        title="Dry Run",
        description="Reject write-classified operations without executing them",
    )
    audit: bool = Field(
        default=True,
        title="Audit Logging",
        description="Append every security decision to the audit log",
    )
    audit_file: Path | None = Field(
        default=None,
        title="Audit File",
        description="Override for the audit log path",
    )
    default_timeout: float | None = Field(
        default=None,
        title="Default Timeout",
        description="Default command timeout in seconds (None = no timeout)",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="warning",
        title="Log Level",
        description="Logging verbosity level",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        title="Log Format",
        description="Log output format (console for dev, json for production)",
    )

    @field_validator("workspace_dir", "audit_file", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path | None) -> Path | None:
        """Expand ~ in paths."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @property
    def state_dir(self) -> Path:
        """Directory for engine state (<workspace>/.vibe)."""
        return self.workspace_dir / STATE_DIR_NAME

    @property
    def audit_path(self) -> Path:
        """Resolved audit log path."""
        return self.audit_file or self.state_dir / AUDIT_FILE_NAME

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[PydanticBaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Layer JSON config files between env vars and .env.

        Note: JSON sources are only included if the files exist.
        """
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
        ]

        project_json = _get_json_config_source(
            settings_cls, Path.cwd() / STATE_DIR_NAME / "settings.json"
        )
        if project_json:
            sources.append(project_json)

        user_json = _get_json_config_source(
            settings_cls, Path.home() / STATE_DIR_NAME / "settings.json"
        )
        if user_json:
            sources.append(user_json)

        sources.append(dotenv_settings)

        return tuple(sources)


# Context variable for settings (takes precedence over global singleton)
_settings_context: ContextVar[VibeSettings | None] = ContextVar(
    "vibe_settings_context", default=None
)

_settings_instance: VibeSettings | None = None


def get_settings() -> VibeSettings:
    """Get the current settings instance.

    Resolution order: context variable, global singleton, then a fresh
    VibeSettings created on first access.
    """
    context_settings = _settings_context.get()
    if context_settings is not None:
        return context_settings

    global _settings_instance
    if _settings_instance is None:
        _settings_instance = VibeSettings()
    return _settings_instance


def set_settings(settings: VibeSettings) -> None:
    """Set the global settings instance."""
    global _settings_instance
    _settings_instance = settings


def set_context_settings(settings: VibeSettings | None) -> Token:
    """Set settings for the current context.

    Args:
        settings: Settings to use in current context, or None to clear

    Returns:
        Token that can be used to reset the context variable.
    """
    return _settings_context.set(settings)


def get_context_settings() -> VibeSettings | None:
    """Get settings from current context (if any)."""
    return _settings_context.get()


@contextmanager
def SettingsContext(settings: VibeSettings) -> Generator[VibeSettings, None, None]:
    """Context manager for isolated settings.

    Example:
        with SettingsContext(VibeSettings(dry_run=True)):
            validate_tool_execution("write_file", dry_run=is_dry_run())
    """
    token = _settings_context.set(settings)
    try:
        yield settings
    finally:
        _settings_context.reset(token)


def reload_settings() -> VibeSettings:
    """Reload settings (clears global singleton and context cache)."""
    global _settings_instance
    _settings_instance = None
    _settings_context.set(None)
    return get_settings()
