"""Safety checks for pingme.

Instructions routed from a phone call end up typed into a live terminal, so
anything matching a destructive pattern is refused. The same check runs
again when a queued instruction is finally delivered.
"""

import hmac
import re
import secrets

BLOCKED_PATTERNS = [
    # rm variants
    re.compile(r"rm\s+-rf", re.IGNORECASE),
    re.compile(r"rm\s+.*-r.*-f", re.IGNORECASE),
    re.compile(r"rm\s+.*-f.*-r", re.IGNORECASE),
    re.compile(r"rm\s+-r\s+/", re.IGNORECASE),
    re.compile(r"rm\s+--recursive", re.IGNORECASE),
    # privilege escalation
    re.compile(r"sudo\s+", re.IGNORECASE),
    re.compile(r"su\s+-c", re.IGNORECASE),
    re.compile(r"doas\s+", re.IGNORECASE),
    re.compile(r"pkexec\s+", re.IGNORECASE),
    # git
    re.compile(r"git\s+push\s+.*--force", re.IGNORECASE),
    re.compile(r"git\s+push\s+.*-f\b", re.IGNORECASE),
    # sql
    re.compile(r"drop\s+table", re.IGNORECASE),
    re.compile(r"drop\s+database", re.IGNORECASE),
    re.compile(r"delete\s+from\s+", re.IGNORECASE),
    re.compile(r"truncate\s+", re.IGNORECASE),
    # disk
    re.compile(r"mkfs", re.IGNORECASE),
    re.compile(r"dd\s+if=", re.IGNORECASE),
    re.compile(r">\s*/dev/", re.IGNORECASE),
    re.compile(r"chmod\s+777", re.IGNORECASE),
    # pipe to shell
    re.compile(r"curl\s+.*\|\s*(bash|sh|zsh)", re.IGNORECASE),
    re.compile(r"wget\s+.*\|\s*(bash|sh|zsh)", re.IGNORECASE),
    re.compile(r"curl\s+.*\|\s*python", re.IGNORECASE),
    re.compile(r"wget\s+.*\|\s*python", re.IGNORECASE),
    # one-liners
    re.compile(r"python[23]?\s+-c\s+", re.IGNORECASE),
    re.compile(r"perl\s+-e\s+", re.IGNORECASE),
    re.compile(r"ruby\s+-e\s+", re.IGNORECASE),
    # shutdown / kill
    re.compile(r"shutdown\s+", re.IGNORECASE),
    re.compile(r"reboot\b", re.IGNORECASE),
    re.compile(r"kill\s+-9\s+", re.IGNORECASE),
    re.compile(r"killall\s+", re.IGNORECASE),
    # reverse shells
    re.compile(r"\bnc\s+.*-e", re.IGNORECASE),
    re.compile(r"\bncat\s+.*-e", re.IGNORECASE),
]

TMUX_TARGET_RE = re.compile(r"^[\w:.%-]+$")


def is_instruction_safe(instruction: str) -> bool:
    """Check if an instruction is safe to type into a session.

    Args:
        instruction: Free text that would be sent via tmux send-keys.

    Returns:
        False if any blocked pattern matches, True otherwise.
    """
    return not any(pattern.search(instruction) for pattern in BLOCKED_PATTERNS)


def is_valid_tmux_target(target: str) -> bool:
    """Validate a tmux session or pane address (e.g. "main:0.1", "%5")."""
    return bool(TMUX_TARGET_RE.match(target))


def generate_token() -> str:
    """Generate a 32-byte hex token for daemon auth."""
    return secrets.token_hex(32)


def verify_token(received: str, expected: str) -> bool:
    """Constant-time token comparison."""
    if not expected:
        return False
    return hmac.compare_digest(received.encode(), expected.encode())
