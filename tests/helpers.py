"""Test helpers shared across pingme tests."""

import subprocess
from datetime import datetime

import pytest

from pingme.bolna.client import BolnaError
from pingme.core.config import DEFAULT_CONFIG, Config, _deep_merge
from pingme.core.session import HookEvent
from pingme.core.tmux import DeliveryResult

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}

# Local noon: outside the default 23:00-07:00 quiet hours.
NOON = datetime(2026, 3, 4, 12, 0)


def make_config(**overrides) -> Config:
    """Build a Config from defaults plus nested overrides.

    Bolna credentials and a phone number are filled in so calls can be made;
    quiet hours are off unless a test turns them on.
    """
    base = {
        "phone": "+15550100",
        "daemon_token": TOKEN,
        "bolna": {"api_key": "bolna-key", "agent_id": "agent-1"},
        "policy": {"quiet_hours": {"enabled": False}},
    }
    return Config.from_dict(_deep_merge(_deep_merge(DEFAULT_CONFIG, base), overrides))


def make_event(event: str = "stopped", **kwargs) -> HookEvent:
    """Build a HookEvent with sensible defaults."""
    defaults = {
        "directory": "/work/api",
        "project": "api",
        "tmux_session": "main",
        "tmux_pane": "main:0.1",
        "timestamp": 1_700_000_000,
        "payload": None,
    }
    defaults.update(kwargs)
    return HookEvent(event=event, **defaults)


class FakeProvider:
    """Stands in for BolnaClient; records every make_call.

    If `gate` (an asyncio.Event) is given, make_call blocks until it is set.
    """

    def __init__(self, fail: bool = False, gate=None):
        self.fail = fail
        self.gate = gate
        self.calls: list[dict] = []

    async def make_call(self, agent_id: str, phone: str, user_data: dict) -> str:
        self.calls.append({"agent_id": agent_id, "phone": phone, "user_data": user_data})
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise BolnaError("Bolna API error: 500 boom")
        return f"exec-{len(self.calls)}"


class FakeDelivery:
    """Stands in for tmux.deliver / tmux.send_key; records what was sent."""

    def __init__(self, success: bool = True):
        self.success = success
        self.sent: list[tuple[str, str]] = []

    def __call__(self, session, text: str) -> DeliveryResult:
        self.sent.append((session.session_name, text))
        if self.success:
            return DeliveryResult(success=True)
        return DeliveryResult(success=False, error="tmux session not found")


def tmux_works() -> bool:
    """Check if tmux can actually start a server and create sessions.

    CI environments may have tmux installed but be unable to run it (no PTY).
    """
    test_socket = "pingme-tmux-check"
    try:
        result = subprocess.run(
            ["tmux", "-L", test_socket, "new-session", "-d", "-s", "check"],
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return False
    if result.returncode != 0:
        return False
    subprocess.run(["tmux", "-L", test_socket, "kill-server"], capture_output=True)
    return True


# Skip marker for tests requiring a working tmux environment
requires_tmux = pytest.mark.skipif(
    not tmux_works(),
    reason="tmux not available or cannot start sessions in this environment",
)
