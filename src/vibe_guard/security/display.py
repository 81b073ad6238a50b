"""Risk indicators and audit rendering.

Each RiskLevel maps to exactly one symbol; UI layers render the enum and
never reconstruct risk from free text.
"""

from rich.table import Table
from rich.text import Text

from vibe_guard.config import VibeSettings
from vibe_guard.security.audit import AuditEntry
from vibe_guard.security.models import CommandValidation, OperationType, RiskLevel
from vibe_guard.security.validator import is_dry_run

RISK_INDICATORS: dict[RiskLevel, str] = {
    RiskLevel.SAFE: "🟢",
    RiskLevel.LOW: "🟡",
    RiskLevel.MEDIUM: "🟠",
    RiskLevel.HIGH: "🔴",
    RiskLevel.BLOCKED: "⛔",
}

RISK_STYLES: dict[RiskLevel, str] = {
    RiskLevel.SAFE: "green",
    RiskLevel.LOW: "yellow",
    RiskLevel.MEDIUM: "dark_orange",
    RiskLevel.HIGH: "red",
    RiskLevel.BLOCKED: "bold red",
}

_OPERATION_LABELS = {
    OperationType.READ: "📖 READ",
    OperationType.WRITE: "✏️ WRITE",
    OperationType.UNKNOWN: "❓ UNKNOWN",
}


def get_risk_indicator(level: RiskLevel) -> str:
    """Symbol for a risk level."""
    return RISK_INDICATORS[level]


def format_security_summary(
    validation: CommandValidation,
    settings: VibeSettings | None = None,
) -> str:
    """One-line summary of a validation, e.g. for a confirmation prompt."""
    indicator = get_risk_indicator(validation.risk_level)
    op_label = _OPERATION_LABELS[validation.operation_type]

    summary = f"{indicator} Risk: {validation.risk_level.value.upper()} | {op_label}"

    if validation.requires_approval:
        summary += " | ⚠️ Approval required"
    if not validation.allowed:
        summary += " | ⛔ BLOCKED"
    if is_dry_run(settings):
        summary += " | 🔍 DRY-RUN"

    return summary


def risk_text(level: RiskLevel) -> Text:
    """Styled rich Text for a risk level."""
    return Text(f"{get_risk_indicator(level)} {level.value}", style=RISK_STYLES[level])


def render_audit_table(entries: list[AuditEntry], title: str = "Audit Log") -> Table:
    """Build a rich table of audit entries (already masked)."""
    table = Table(title=title, show_lines=False, padding=(0, 1))
    table.add_column("Time", style="dim", no_wrap=True)
    table.add_column("Action", style="bold cyan", no_wrap=True)
    table.add_column("Risk", no_wrap=True)
    table.add_column("Result", no_wrap=True)
    table.add_column("Command", max_width=60)

    for entry in entries:
        try:
            level = RiskLevel(entry.risk_level)
        except ValueError:
            level = RiskLevel.LOW
        result = entry.result or ("approved" if entry.approved else "denied")
        if entry.dry_run:
            result += " (dry-run)"
        table.add_row(
            entry.timestamp[:19],
            entry.action,
            risk_text(level),
            result,
            entry.command or "",
        )

    return table
