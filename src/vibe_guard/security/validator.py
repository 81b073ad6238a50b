"""Command and tool validation.

Classifies a raw command string through the ordered stages declared in
``vibe_guard.security.rules``; the first matching stage decides. Results are
computed fresh on every call and never cached.
"""

import sys

from vibe_guard.config import VibeSettings, get_settings
from vibe_guard.logging import Loggers
from vibe_guard.security import rules
from vibe_guard.security.models import (
    CommandValidation,
    OperationType,
    RiskLevel,
    ToolValidation,
)
from vibe_guard.security.secrets import mask_secrets

logger = Loggers.security()

DRY_RUN_FLAG = "--dry-run"
DRY_RUN_REASON = "Write operations blocked in dry-run mode"
APPROVAL_REASON = "Requires explicit approval"


def is_dry_run(settings: VibeSettings | None = None) -> bool:
    """Check whether dry-run mode is active.

    True when settings enable it (``VIBE_DRY_RUN=true``) or ``--dry-run``
    was passed on the command line.
    """
    settings = settings or get_settings()
    return settings.dry_run or DRY_RUN_FLAG in sys.argv


def classify_tool(tool_name: str) -> OperationType:
    """Classify a tool by static membership (closed set of tool names)."""
    if tool_name in rules.READ_TOOLS:
        return OperationType.READ
    if tool_name in rules.WRITE_TOOLS:
        return OperationType.WRITE
    return OperationType.UNKNOWN


def validate_tool_execution(tool_name: str, dry_run: bool = False) -> ToolValidation:
    """Validate a tool invocation against the current mode.

    In dry-run mode every WRITE tool is rejected regardless of its normal
    risk. READ tools are always allowed at SAFE.
    """
    op_type = classify_tool(tool_name)

    if dry_run and op_type is OperationType.WRITE:
        return ToolValidation(
            allowed=False,
            risk_level=RiskLevel.MEDIUM,
            reason=DRY_RUN_REASON,
        )

    if op_type is OperationType.READ:
        return ToolValidation(allowed=True, risk_level=RiskLevel.SAFE)

    if op_type is OperationType.WRITE:
        return ToolValidation(allowed=True, risk_level=RiskLevel.MEDIUM)

    return ToolValidation(allowed=True, risk_level=RiskLevel.LOW)


class CommandValidator:
    """Classifies shell commands into risk levels and allow/block decisions.

    Evaluation order (first match wins):
    1. Deny-list patterns -> BLOCKED
    2. Allow-list prefixes -> SAFE read
    3. Approval-required patterns -> HIGH write, approval
    4. Write-verb heuristic -> MEDIUM write, approval
    5. Read-verb heuristic -> SAFE read
    6. Default -> LOW unknown, approval recommended
    """

    def validate(self, command: str) -> CommandValidation:
        """Classify one command.

        Args:
            command: Raw command string as issued by the agent.

        Returns:
            CommandValidation for this command.
        """
        result = self._classify(command)
        logger.debug(
            "command_validated",
            command=mask_secrets(command),
            risk_level=result.risk_level.value,
            allowed=result.allowed,
            requires_approval=result.requires_approval,
        )
        return result

    def _classify(self, command: str) -> CommandValidation:
        trimmed = command.strip().lower()

        blocked = rules.match_blocked(command)
        if blocked:
            return CommandValidation(
                allowed=False,
                risk_level=RiskLevel.BLOCKED,
                requires_approval=False,
                operation_type=OperationType.WRITE,
                reason=f"Blocked: matches dangerous pattern ({blocked})",
            )

        if rules.is_allowed_command(command):
            return CommandValidation(
                allowed=True,
                risk_level=RiskLevel.SAFE,
                requires_approval=False,
                operation_type=OperationType.READ,
            )

        approval = rules.match_approval(command)
        if approval:
            return CommandValidation(
                allowed=True,
                risk_level=RiskLevel.HIGH,
                requires_approval=True,
                operation_type=OperationType.WRITE,
                reason=f"{APPROVAL_REASON} ({approval})",
            )

        if rules.WRITE_VERB_PATTERN.search(trimmed):
            return CommandValidation(
                allowed=True,
                risk_level=RiskLevel.MEDIUM,
                requires_approval=True,
                operation_type=OperationType.WRITE,
                reason="Modifies files or data",
            )

        if rules.READ_VERB_PATTERN.search(trimmed) and not rules.is_compound(trimmed):
            return CommandValidation(
                allowed=True,
                risk_level=RiskLevel.SAFE,
                requires_approval=False,
                operation_type=OperationType.READ,
            )

        return CommandValidation(
            allowed=True,
            risk_level=RiskLevel.LOW,
            requires_approval=True,
            operation_type=OperationType.UNKNOWN,
            reason="Unrecognized command, approval recommended",
        )

    def check_legacy(self, command: str) -> str | None:
        """Independent destructive-shape check; returns a reason if blocked."""
        match = rules.match_legacy_destructive(command)
        if match:
            return f"Destructive command blocked for safety ({match})"
        return None


def get_security_lists() -> dict[str, list[str]]:
    """Allow-list and tool tables, for display."""
    return {
        "allowed_commands": list(rules.ALLOWED_COMMANDS),
        "read_operations": sorted(rules.READ_TOOLS),
        "write_operations": sorted(rules.WRITE_TOOLS),
    }


_default_validator = CommandValidator()


def validate_command(command: str) -> CommandValidation:
    """Validate a command with the default validator."""
    return _default_validator.validate(command)
