"""tmux wrapper for pingme.

Delivers text and control keys to the tmux panes that host agent sessions.
Every call shells out to the tmux binary; nothing here keeps state.
"""

import logging
import os
import subprocess
from dataclasses import dataclass

from pingme.core.session import Session

logger = logging.getLogger(__name__)

# Socket name for tmux isolation (used for testing)
# Set PINGME_TMUX_SOCKET to use a separate tmux server
TMUX_SOCKET_ENV = "PINGME_TMUX_SOCKET"


def _tmux_cmd(args: list[str]) -> list[str]:
    """Build a tmux command, optionally with a custom socket.

    If PINGME_TMUX_SOCKET is set, adds -L <socket> to use an isolated server.
    """
    socket = os.environ.get(TMUX_SOCKET_ENV)
    if socket:
        return ["tmux", "-L", socket] + args
    return ["tmux"] + args


class TmuxError(Exception):
    """Raised when a tmux command fails."""

    pass


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    error: str | None = None


def is_installed() -> bool:
    """Check if tmux is installed on the system."""
    try:
        result = subprocess.run(_tmux_cmd(["-V"]), capture_output=True)
    except FileNotFoundError:
        return False
    return result.returncode == 0


def has_session(name: str) -> bool:
    """Check if a tmux session exists.

    Args:
        name: Session name to check.

    Returns:
        True if session exists, False otherwise.
    """
    try:
        result = subprocess.run(
            _tmux_cmd(["has-session", "-t", name]),
            capture_output=True,
        )
    except FileNotFoundError:
        return False
    return result.returncode == 0


def _run(args: list[str], what: str) -> None:
    try:
        result = subprocess.run(_tmux_cmd(args), capture_output=True, text=True)
    except FileNotFoundError as e:
        raise TmuxError(f"Failed to {what}: tmux not found") from e
    if result.returncode != 0:
        raise TmuxError(f"Failed to {what}: {result.stderr.strip()}")


def send_keys(target: str, keys: str, submit: bool = True) -> None:
    """Type text into a tmux pane.

    The text is sent literally (-l), so words like "Enter" or "C-c" inside
    an instruction are not interpreted as key names.

    Args:
        target: Pane address (e.g., "main:0.1" or "%3").
        keys: The text to send.
        submit: Whether to press Enter afterwards. Defaults to True.

    Raises:
        TmuxError: If tmux command fails.
    """
    _run(["send-keys", "-t", target, "-l", keys], "send keys")
    if submit:
        _run(["send-keys", "-t", target, "Enter"], "send Enter")


def send_control_key(target: str, key: str) -> None:
    """Send a single named key (e.g. "C-c") to a tmux pane.

    Raises:
        TmuxError: If tmux command fails.
    """
    _run(["send-keys", "-t", target, key], f"send {key}")


def capture_pane(target: str, lines: int = 5) -> str:
    """Return the last `lines` lines of a pane's visible content."""
    result = subprocess.run(
        _tmux_cmd(["capture-pane", "-t", target, "-p"]),
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise TmuxError(f"Failed to capture pane: {result.stderr.strip()}")
    return "\n".join(result.stdout.rstrip("\n").split("\n")[-lines:])


def deliver(session: Session, text: str) -> DeliveryResult:
    """Type `text` into a session's pane and submit it.

    Args:
        session: Target session.
        text: Instruction (or single keystroke) to send.

    Returns:
        DeliveryResult; failures carry a human-readable error.
    """
    if not has_session(session.tmux_session):
        return DeliveryResult(
            success=False, error=f'tmux session "{session.tmux_session}" not found'
        )
    try:
        send_keys(session.tmux_pane, text)
    except TmuxError as e:
        logger.error(f"Delivery to {session.session_name} failed: {e}")
        return DeliveryResult(success=False, error=str(e))
    logger.info(f"Sent to {session.session_name} ({session.tmux_pane}): {text[:120]}")
    return DeliveryResult(success=True)


def send_key(session: Session, key: str) -> DeliveryResult:
    """Send a control key such as "C-c" to a session's pane."""
    try:
        send_control_key(session.tmux_pane, key)
    except TmuxError as e:
        logger.error(f"Sending {key} to {session.session_name} failed: {e}")
        return DeliveryResult(success=False, error=str(e))
    return DeliveryResult(success=True)
