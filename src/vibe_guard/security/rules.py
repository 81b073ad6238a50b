"""Ordered rule tables for command and tool classification.

The validator walks these tables in a fixed order (deny, allow, approval,
write heuristic, read heuristic, default). Each table is plain data so the
stages can be tested in isolation from execution.
"""

import re

# "rm" followed by a run of flags that includes both a recursive and a force
# flag, in any order, combined (-rf, -Rf, -fr) or separate (-r -f, --recursive)
_RM_FLAG = r"-{1,2}[\w-]+\s+"
_RM_RECURSIVE_FORCE = (
    r"\brm\s+"
    rf"(?=(?:{_RM_FLAG})*?(?:-[a-zA-Z]*[rR][a-zA-Z]*|--recursive)\s)"
    rf"(?=(?:{_RM_FLAG})*?(?:-[a-zA-Z]*f[a-zA-Z]*|--force)\s)"
    rf"(?:{_RM_FLAG})+"
)

# Patterns that are NEVER allowed (regex, description)
BLOCKED_PATTERNS: list[tuple[str, str]] = [
    # Recursive delete of root, absolute paths or home
    (_RM_RECURSIVE_FORCE + r"[/~]", "recursive delete of root or home"),
    (_RM_RECURSIVE_FORCE + r"\$HOME\b", "recursive delete of $HOME"),
    (_RM_RECURSIVE_FORCE + r"\*", "rm -rf * (wildcard delete)"),
    # Filesystem format / raw disk writes
    (r"\bmkfs\b", "filesystem format"),
    (r"\bdd\s+if=", "raw disk write with dd"),
    (r">\s*/dev/sd", "redirect to disk device"),
    (r"(?i)\bformat\s+[a-z]:", "drive format"),
    # Fork bombs
    (r":\(\)\s*\{.*:\|:.*\}\s*;\s*:", "fork bomb"),
    # World-writable permissions
    (r"\bchmod\s+(-R\s+)?777\b", "world-writable chmod"),
    # Remote code execution via pipe
    (r"\b(curl|wget)\b.*\|\s*(ba|z)?sh\b", "download piped to shell"),
    (r"\b(curl|wget)\b.*\|\s*python[0-9.]*\b", "download piped to python"),
    (r"\beval\s*\(", "eval injection"),
    # Privileged destructive operations
    (r"\bsudo\s+rm\b", "privileged delete"),
    # System control
    (r"\bshutdown\b", "system shutdown"),
    (r"\breboot\b", "system reboot"),
    (r"\bhalt\b", "system halt"),
    (r"\bpoweroff\b", "system poweroff"),
    (r"\binit\s+0\b", "system halt via init"),
    # System configuration
    (r">\s*/etc/", "write under /etc"),
    (r"\btee\s+(-a\s+)?/etc/", "write under /etc"),
    (r"\brm\s+.*/etc/", "delete under /etc"),
]

_COMPILED_BLOCKED_PATTERNS = [
    (re.compile(pattern), desc) for pattern, desc in BLOCKED_PATTERNS
]

# Known-safe, read-only command prefixes (matched exactly or as "<prefix> ...")
ALLOWED_COMMANDS: tuple[str, ...] = (
    "ls",
    "cat",
    "head",
    "tail",
    "grep",
    "find",
    "echo",
    "pwd",
    "whoami",
    "date",
    "which",
    "wc",
    "sort",
    "uniq",
    "diff",
    "git status",
    "git log",
    "git diff",
    "git branch",
    "git show",
    "npm list",
    "npm outdated",
    "npm audit",
    "npm view",
    "node --version",
    "npm --version",
    "python --version",
    "env",
    "printenv",
    "hostname",
    "uname",
)

# Patterns requiring explicit approval (high risk)
APPROVAL_PATTERNS: list[tuple[str, str]] = [
    (r"\bnpm\s+publish\b", "package publish"),
    (r"\bgit\s+push\b.*(--force|\s-f\b)", "force push"),
    (r"\bgit\s+reset\b.*--hard", "hard reset"),
    (r"\bdocker\s+rm\b", "container removal"),
    (r"\bkubectl\s+delete\b", "cluster resource deletion"),
    (r"\baws\s+.*--recursive", "recursive cloud operation"),
    (r"\baws\s+.*\bdelete", "cloud resource deletion"),
    (r"\brm\s+-r", "recursive delete"),
    (r"(?i)\bDROP\s+TABLE\b", "SQL DROP TABLE"),
    (r"(?i)\bDELETE\s+FROM\b", "SQL DELETE"),
    (r"(?i)\bTRUNCATE\b", "SQL TRUNCATE"),
]

_COMPILED_APPROVAL_PATTERNS = [
    (re.compile(pattern), desc) for pattern, desc in APPROVAL_PATTERNS
]

# Heuristics, applied to the lowercased command
WRITE_VERB_PATTERN = re.compile(
    r"\b(rm|mv|cp|chmod|chown|write|delete|drop|truncate)\b"
)
READ_VERB_PATTERN = re.compile(
    r"^(ls|cat|head|tail|grep|find|echo|pwd|whoami|date|which)\b"
)

# ; && || | ` $( > & (allow-list and read heuristic only apply to simple commands)
SHELL_CONTROL_PATTERN = re.compile(r"[;|`>&]|\$\(")

# Independent destructive-shape list checked by the executor before spawning.
# Kept separate from BLOCKED_PATTERNS so one table regressing does not open
# the other.
LEGACY_DESTRUCTIVE_PATTERNS: list[tuple[str, str]] = [
    (r"rm -rf /", "rm -rf /"),
    (r"\brm\s+(?:-\S+\s+)*/(?:\s|\*|$)", "delete of /"),
    (r"del /s /q", "del /s /q"),
    (r"\bformat\s+[a-z]:", "format drive"),
    (r"chmod 777", "chmod 777"),
    (r"kill -9", "kill -9"),
    (r"sudo rm", "sudo rm"),
    (r"rmdir /s", "rmdir /s"),
    (r"\bdeltree\b", "deltree"),
]

_COMPILED_LEGACY_PATTERNS = [
    (re.compile(pattern, re.IGNORECASE), desc)
    for pattern, desc in LEGACY_DESTRUCTIVE_PATTERNS
]

# Tool classification (closed set, disjoint)
READ_TOOLS: frozenset[str] = frozenset(
    {
        "list_directory",
        "read_file",
        "glob",
        "search_file_content",
        "git_status",
        "git_diff",
        "git_log",
        "git_blame",
        "rg_search",
        "list_files_rg",
        "get_file_info",
        "check_dependency",
        "get_project_info",
        "analyze_code_quality",
        "security_scan",
        "performance_benchmark",
    }
)

WRITE_TOOLS: frozenset[str] = frozenset(
    {
        "write_file",
        "replace",
        "create_directory",
        "delete_file",
        "move_file",
        "copy_file",
        "append_to_file",
        "run_shell_command",
        "run_tests",
        "run_lint",
        "smart_refactor",
        "generate_tests",
        "generate_documentation",
        "migrate_code",
    }
)

assert not READ_TOOLS & WRITE_TOOLS, "a tool cannot be both read and write"


def match_blocked(command: str) -> str | None:
    """Return the description of the first deny-list match, if any."""
    for pattern, desc in _COMPILED_BLOCKED_PATTERNS:
        if pattern.search(command):
            return desc
    return None


def match_approval(command: str) -> str | None:
    """Return the description of the first approval-required match, if any."""
    for pattern, desc in _COMPILED_APPROVAL_PATTERNS:
        if pattern.search(command):
            return desc
    return None


def match_legacy_destructive(command: str) -> str | None:
    """Return the description of the first legacy destructive match, if any."""
    for pattern, desc in _COMPILED_LEGACY_PATTERNS:
        if pattern.search(command):
            return desc
    return None


def is_compound(command: str) -> bool:
    """Check for chaining, piping, substitution, redirection or backgrounding."""
    return bool(SHELL_CONTROL_PATTERN.search(command))


def is_allowed_command(command: str) -> bool:
    """Check if a command is on the read-only allow-list.

    Compound commands never match: "ls && rm x" is not a listing.
    """
    trimmed = command.strip().lower()
    if is_compound(trimmed):
        return False
    return any(
        trimmed == allowed or trimmed.startswith(allowed + " ")
        for allowed in ALLOWED_COMMANDS
    )
