"""Command validation, secret masking and audit logging.

Usage:
    from vibe_guard.security import CommandValidator, AuditLog

    validation = CommandValidator().validate("git status")
    # validation.risk_level == RiskLevel.SAFE

    validation = CommandValidator().validate("rm -rf /")
    # validation.allowed is False, validation.risk_level == RiskLevel.BLOCKED
"""

from vibe_guard.security.audit import AuditEntry, AuditLog
from vibe_guard.security.display import (
    RISK_INDICATORS,
    format_security_summary,
    get_risk_indicator,
    render_audit_table,
)
from vibe_guard.security.models import (
    CommandValidation,
    OperationType,
    RiskLevel,
    ToolValidation,
    escalate,
)
from vibe_guard.security.secrets import (
    REDACTION_MARKER,
    SecretMasker,
    contains_secrets,
    count_markers,
    mask_secrets,
)
from vibe_guard.security.validator import (
    CommandValidator,
    classify_tool,
    get_security_lists,
    is_dry_run,
    validate_command,
    validate_tool_execution,
)

__all__ = [
    # Validation
    "CommandValidator",
    "validate_command",
    "classify_tool",
    "validate_tool_execution",
    "is_dry_run",
    "get_security_lists",
    # Secrets
    "SecretMasker",
    "mask_secrets",
    "contains_secrets",
    "count_markers",
    "REDACTION_MARKER",
    # Audit
    "AuditLog",
    "AuditEntry",
    # Display
    "RISK_INDICATORS",
    "get_risk_indicator",
    "format_security_summary",
    "render_audit_table",
    # Data models
    "CommandValidation",
    "OperationType",
    "RiskLevel",
    "ToolValidation",
    "escalate",
]
