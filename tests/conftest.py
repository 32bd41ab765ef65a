"""Shared pytest fixtures for pingme tests."""

import pytest

from pingme.core.config import Config
from tests.helpers import FakeDelivery, FakeProvider, make_config


@pytest.fixture(autouse=True)
def pingme_home(tmp_path, monkeypatch):
    """Point PINGME_HOME at a temp dir and clear PINGME_* overrides.

    This ensures tests never read or write the real ~/.pingme/.
    """
    home = tmp_path / "pingme-home"
    monkeypatch.setenv("PINGME_HOME", str(home))
    for key in (
        "PINGME_MODE",
        "PINGME_PHONE",
        "PINGME_DAEMON_TOKEN",
        "PINGME_BOLNA_API_KEY",
        "PINGME_BOLNA_AGENT_ID",
        "PINGME_DAEMON_PORT",
        "PINGME_STATE_FILE",
        "PINGME_LOG_LEVEL",
        "PINGME_TMUX_SOCKET",
    ):
        monkeypatch.delenv(key, raising=False)
    return home


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def delivery() -> FakeDelivery:
    return FakeDelivery()
