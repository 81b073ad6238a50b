"""Append-only audit log of security decisions and execution outcomes.

One JSON object per line, default path ``<workspace>/.vibe/audit.log``.
The file is only ever appended to or deleted as a whole via ``clear()``.
Write failures never reach the caller; they are logged and counted.
"""

import json
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from vibe_guard.config import VibeSettings, get_settings
from vibe_guard.logging import Loggers
from vibe_guard.security.models import OperationType, RiskLevel
from vibe_guard.security.secrets import SecretMasker, get_masker
from vibe_guard.security.validator import is_dry_run

logger = Loggers.security()

AuditResult = Literal["success", "failure", "blocked"]


@dataclass(frozen=True)
class AuditEntry:
    """A single immutable audit record.

    Attributes:
        timestamp: ISO-8601 time the decision or outcome was known.
        action: What was decided or run (e.g. "shell_command", "tool:write_file").
        risk_level: Assessed risk level value.
        approved: Whether the action was allowed to proceed.
        command: Masked command string, if any.
        result: success, failure or blocked.
        operation_type: read, write or unknown.
        dry_run: Whether dry-run mode was active.
        details: Extra context (exit code, duration, pid...).
    """

    timestamp: str
    action: str
    risk_level: str
    approved: bool
    command: str | None = None
    result: AuditResult | None = None
    operation_type: str | None = None
    dry_run: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {k: v for k, v in asdict(self).items() if v is not None and v != {}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEntry":
        """Create from dictionary."""
        return cls(
            timestamp=data.get("timestamp", ""),
            action=data.get("action", ""),
            risk_level=data.get("risk_level", RiskLevel.LOW.value),
            approved=data.get("approved", False),
            command=data.get("command"),
            result=data.get("result"),
            operation_type=data.get("operation_type"),
            dry_run=data.get("dry_run", False),
            details=data.get("details", {}),
        )


class AuditLog:
    """Durable, append-only audit trail.

    Example:
        audit = AuditLog(workspace / ".vibe" / "audit.log")
        audit.log_event("shell_command", command="ls", risk_level=RiskLevel.SAFE,
                        approved=True, result="success")
        audit.get_recent(10)  # most recent first
    """

    def __init__(
        self,
        path: Path | str | None = None,
        enabled: bool | None = None,
        masker: SecretMasker | None = None,
        settings: VibeSettings | None = None,
    ):
        """Initialize the audit log.

        Args:
            path: Log file path (default: settings.audit_path).
            enabled: Override for settings.audit (VIBE_AUDIT).
            masker: Secret masker applied to commands before persisting.
            settings: Settings to read defaults and dry-run mode from.
        """
        self._settings = settings
        settings = settings or get_settings()
        self.path = Path(path) if path is not None else settings.audit_path
        self.enabled = settings.audit if enabled is None else enabled
        self._masker = masker if masker is not None else get_masker()
        self.write_failures = 0

    def _dry_run(self) -> bool:
        return is_dry_run(self._settings)

    def log(self, entry: AuditEntry) -> AuditEntry | None:
        """Append an entry to the log.

        The command field is masked and the dry-run flag stamped before
        writing. Never raises.

        Returns:
            The entry as persisted, or None when logging is disabled or failed.
        """
        if not self.enabled:
            return None

        try:
            if entry.command:
                entry = replace(entry, command=self._masker.mask(entry.command))
            line = json.dumps(entry.to_dict())
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except (OSError, TypeError, ValueError) as e:
            # Audit failures must not break execution
            self.write_failures += 1
            logger.warning(
                "audit_write_failed",
                path=str(self.path),
                error=str(e),
                failures=self.write_failures,
            )
            return None

        return entry

    def log_event(
        self,
        action: str,
        risk_level: RiskLevel,
        approved: bool,
        command: str | None = None,
        result: AuditResult | None = None,
        operation_type: OperationType | None = None,
        **details: Any,
    ) -> AuditEntry | None:
        """Create and append an entry stamped with the current time.

        Args:
            action: Action name.
            risk_level: Assessed risk level.
            approved: Whether the action was allowed.
            command: Command string (masked before persisting).
            result: Outcome, if known.
            operation_type: Read/write classification.
            **details: Extra context stored under "details".

        Returns:
            The persisted entry, or None.
        """
        if not self.enabled:
            return None

        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            risk_level=risk_level.value,
            approved=approved,
            command=command,
            result=result,
            operation_type=operation_type.value if operation_type else None,
            dry_run=self._dry_run(),
            details={k: v for k, v in details.items() if v is not None},
        )
        return self.log(entry)

    def get_recent(self, count: int = 50) -> list[AuditEntry]:
        """Return the last ``count`` entries, most recent first."""
        if count <= 0 or not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                lines = [line.strip() for line in f if line.strip()]
        except OSError as e:
            logger.warning("audit_read_failed", path=str(self.path), error=str(e))
            return []

        entries: list[AuditEntry] = []
        for line in lines[-count:]:
            try:
                entries.append(AuditEntry.from_dict(json.loads(line)))
            except (json.JSONDecodeError, AttributeError):
                continue  # Skip malformed lines

        entries.reverse()
        return entries

    def clear(self) -> bool:
        """Delete the log file. Explicit, user-triggered only.

        Returns:
            True if a file was removed.
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("audit_clear_failed", path=str(self.path), error=str(e))
            return False
        logger.info("audit_cleared", path=str(self.path))
        return True

    def summary(self, count: int = 1000) -> dict[str, Any]:
        """Summary statistics over the most recent entries."""
        entries = self.get_recent(count)
        if not entries:
            return {"total": 0}

        results: dict[str, int] = {}
        risks: dict[str, int] = {}
        for entry in entries:
            if entry.result:
                results[entry.result] = results.get(entry.result, 0) + 1
            risks[entry.risk_level] = risks.get(entry.risk_level, 0) + 1

        return {
            "total": len(entries),
            "results": results,
            "risk_distribution": risks,
            "first": entries[-1].timestamp,
            "last": entries[0].timestamp,
            "write_failures": self.write_failures,
        }
