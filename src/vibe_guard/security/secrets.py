"""Secret detection and masking.

Applies a fixed, ordered list of secret-shaped patterns. Each pattern is
applied to the output of the previous one and overlapping matches are not
deduplicated, so a value may be masked more than once. Over-masking is the
intended failure mode.
"""

import re

REDACTION_MARKER = "***"

# Spans at or below this length are replaced wholesale
_SHORT_SECRET_LENGTH = 8
_KEEP_CHARS = 4

SECRET_PATTERNS: list[tuple[str, str, int]] = [
    ("openai_key", r"sk-[a-zA-Z0-9]{20,}", 0),
    ("github_token", r"ghp_[a-zA-Z0-9]{36}", 0),
    ("github_oauth", r"gho_[a-zA-Z0-9]{36}", 0),
    ("github_pat", r"github_pat_[a-zA-Z0-9_]{22,}", 0),
    ("slack_token", r"xox[baprs]-[a-zA-Z0-9-]+", 0),
    ("jwt", r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*", 0),
    ("aws_access_key", r"AKIA[0-9A-Z]{16}", 0),
    ("generic_40", r"[a-zA-Z0-9+/]{40}", 0),
    ("password_assignment", r"password\s*[=:]\s*['\"][^'\"]+['\"]", re.IGNORECASE),
    ("api_key_assignment", r"api[_-]?key\s*[=:]\s*['\"][^'\"]+['\"]", re.IGNORECASE),
    ("secret_assignment", r"secret\s*[=:]\s*['\"][^'\"]+['\"]", re.IGNORECASE),
    ("bearer_token", r"Bearer\s+[a-zA-Z0-9._-]+", 0),
    ("private_key", r"private_key.*-----", re.IGNORECASE),
    ("pem_header", r"-----BEGIN [A-Z ]*PRIVATE KEY-----", 0),
]


def _redact(match: re.Match[str]) -> str:
    value = match.group(0)
    if len(value) <= _SHORT_SECRET_LENGTH:
        return REDACTION_MARKER
    return value[:_KEEP_CHARS] + REDACTION_MARKER + value[-_KEEP_CHARS:]


class SecretMasker:
    """Detects and redacts secret-shaped substrings.

    Example:
        >>> SecretMasker().mask("key sk-abcdefghijklmnopqrstuvwxyz123456")
        'key sk-a***3456'
    """

    def __init__(self, patterns: list[tuple[str, str, int]] | None = None):
        self._patterns = [
            (name, re.compile(pattern, flags))
            for name, pattern, flags in (patterns or SECRET_PATTERNS)
        ]

    def mask(self, text: str) -> str:
        """Redact every secret-shaped span in text."""
        masked = text
        for _, pattern in self._patterns:
            masked = pattern.sub(_redact, masked)
        return masked

    def contains_secrets(self, text: str) -> bool:
        """Check whether any secret pattern matches text."""
        return any(pattern.search(text) for _, pattern in self._patterns)

    def detect(self, text: str) -> list[str]:
        """Names of the patterns that match text, in pattern order."""
        return [name for name, pattern in self._patterns if pattern.search(text)]


def count_markers(text: str) -> int:
    """Number of redaction markers in text."""
    return text.count(REDACTION_MARKER)


_default_masker = SecretMasker()


def get_masker() -> SecretMasker:
    """Get the default masker."""
    return _default_masker


def mask_secrets(text: str) -> str:
    """Mask secrets using the default pattern set."""
    return _default_masker.mask(text)


def contains_secrets(text: str) -> bool:
    """Check for secrets using the default pattern set."""
    return _default_masker.contains_secrets(text)
