"""Data models for command and tool validation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RiskLevel(Enum):
    """Risk level for a command or tool invocation.

    Totally ordered: SAFE < LOW < MEDIUM < HIGH < BLOCKED.
    """

    SAFE = "safe"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    BLOCKED = "blocked"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank >= other.rank


_RISK_ORDER = (
    RiskLevel.SAFE,
    RiskLevel.LOW,
    RiskLevel.MEDIUM,
    RiskLevel.HIGH,
    RiskLevel.BLOCKED,
)


def escalate(*levels: RiskLevel) -> RiskLevel:
    """Combine risk levels conservatively (highest wins)."""
    if not levels:
        return RiskLevel.SAFE
    return max(levels)


class OperationType(Enum):
    """Side-effect class of a command or tool."""

    READ = "read"
    WRITE = "write"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CommandValidation:
    """Result of classifying one shell command.

    Attributes:
        allowed: False only for deny-list matches.
        risk_level: Assessed risk (BLOCKED iff not allowed).
        reason: Explanation for blocked/approval-required results.
        requires_approval: Caller must confirm before executing.
        operation_type: Read/write/unknown classification.
    """

    allowed: bool
    risk_level: RiskLevel
    requires_approval: bool
    operation_type: OperationType
    reason: str | None = None

    def __post_init__(self) -> None:
        if not self.allowed and self.risk_level is not RiskLevel.BLOCKED:
            raise ValueError("a disallowed command must be BLOCKED")
        if self.requires_approval and self.risk_level in (
            RiskLevel.SAFE,
            RiskLevel.BLOCKED,
        ):
            raise ValueError(
                f"approval cannot be required at risk level {self.risk_level.value}"
            )

    @property
    def is_blocked(self) -> bool:
        return self.risk_level is RiskLevel.BLOCKED


@dataclass(frozen=True)
class ToolValidation:
    """Result of validating a tool invocation against the current mode."""

    allowed: bool
    risk_level: RiskLevel
    reason: str | None = None
