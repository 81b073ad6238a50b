"""Structured logging configuration for vibe-guard.

Uses structlog for structured, context-rich logging that supports
both human-readable console output and machine-readable JSON format.
Commands are masked before they are handed to any logger call.
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from vibe_guard.config import VibeSettings


def configure_logging(settings: "VibeSettings | None" = None) -> None:
    """Configure structured logging based on settings.

    Args:
        settings: Engine settings. If None, uses defaults.
    """
    log_level = logging.WARNING
    log_format = "console"

    if settings is not None:
        log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
        log_format = settings.log_format

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=log_level,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    # asyncio is chatty about child watchers at debug level
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name) if name else structlog.get_logger()


def bind_context(**kwargs: object) -> None:
    """Bind context variables to all subsequent log calls in the current context.

    Example:
        bind_context(chain_id="abc123")
        logger.info("step_started")  # Will include chain_id

    Args:
        **kwargs: Key-value pairs to bind to logging context
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context.

    Args:
        *keys: Keys to remove from context
    """
    structlog.contextvars.unbind_contextvars(*keys)


class Loggers:
    """Pre-configured logger instances for engine components."""

    @staticmethod
    def security() -> structlog.stdlib.BoundLogger:
        """Logger for validation, masking and audit."""
        return get_logger("vibe_guard.security")

    @staticmethod
    def execution() -> structlog.stdlib.BoundLogger:
        """Logger for the process executor."""
        return get_logger("vibe_guard.execution")

    @staticmethod
    def orchestration() -> structlog.stdlib.BoundLogger:
        """Logger for planning and tool-chain execution."""
        return get_logger("vibe_guard.orchestration")

    @staticmethod
    def config() -> structlog.stdlib.BoundLogger:
        """Logger for configuration."""
        return get_logger("vibe_guard.config")
