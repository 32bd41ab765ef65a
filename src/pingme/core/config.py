"""pingme configuration management.

Handles ~/.pingme/config.json. The file is deep-merged over DEFAULT_CONFIG
and then environment overrides are applied, so a partial (or missing)
file is always valid.
"""

import copy
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import orjson

from pingme.core.security import generate_token

HOME_ENV = "PINGME_HOME"

DEFAULT_CONFIG: dict = {
    "mode": "voice",
    "phone": "",
    "bolna": {
        "api_key": "",
        "agent_id": "",
        "inbound_number": "",
        "base_url": "https://api.bolna.ai",
    },
    "daemon": {
        "host": "127.0.0.1",
        "port": 7331,
        "log_level": "info",
        "state_file": "",
        "log_file": "",
    },
    "daemon_token": "",
    "policy": {
        "cooldown_seconds": 60,
        "batch_window_seconds": 10,
        "max_call_duration": 600,
        "call_on": {
            "task_completed": True,
            "stopped": True,
            "question": True,
            "permission": True,
            "error": False,
        },
        "quiet_hours": {
            "enabled": True,
            "start": "23:00",
            "end": "07:00",
            "mode": "sms",
        },
    },
    "sessions": {
        "auto_name": True,
        "cleanup_after_minutes": 30,
    },
}

# env var -> (section, key); section None means top level
ENV_OVERRIDES = {
    "PINGME_MODE": (None, "mode"),
    "PINGME_PHONE": (None, "phone"),
    "PINGME_DAEMON_TOKEN": (None, "daemon_token"),
    "PINGME_BOLNA_API_KEY": ("bolna", "api_key"),
    "PINGME_BOLNA_AGENT_ID": ("bolna", "agent_id"),
    "PINGME_DAEMON_PORT": ("daemon", "port"),
    "PINGME_STATE_FILE": ("daemon", "state_file"),
    "PINGME_LOG_LEVEL": ("daemon", "log_level"),
}


def get_pingme_home() -> Path:
    """Get the pingme directory (~/.pingme, or $PINGME_HOME)."""
    if env_home := os.environ.get(HOME_ENV):
        return Path(env_home)
    return Path.home() / ".pingme"


def get_config_path() -> Path:
    """Get the path to pingme's config file."""
    return get_pingme_home() / "config.json"


def read_config() -> dict:
    """Read pingme config, returning empty dict if not found."""
    config_path = get_config_path()
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_bytes()
        loaded = orjson.loads(content) if content else {}
        return loaded if isinstance(loaded, dict) else {}
    except (orjson.JSONDecodeError, OSError):
        return {}


def write_config(config: dict) -> None:
    """Write pingme config."""
    config_path = get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_bytes(orjson.dumps(config, option=orjson.OPT_INDENT_2))
    config_path.chmod(0o600)


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(raw: dict) -> dict:
    for env_key, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_key)
        if not value:
            continue
        if key == "port":
            value = int(value)
        target = raw if section is None else raw.setdefault(section, {})
        target[key] = value
    return raw


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def parse_clock(value: str) -> int:
    """Parse "HH:MM" into minutes since midnight.

    Raises:
        ValueError: If the string is not a valid 24h time.
    """
    parts = value.split(":")
    if len(parts) != 2:
        raise ValueError(f'Invalid time format: "{value}"')
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f'Invalid time format: "{value}"')
    return hours * 60 + minutes


@dataclass(frozen=True)
class QuietHours:
    enabled: bool = True
    start: str = "23:00"
    end: str = "07:00"
    mode: str = "sms"  # "sms" downgrades to the fallback channel, "silent" drops

    def __post_init__(self) -> None:
        """Validate times and mode eagerly so bad config fails at startup."""
        parse_clock(self.start)
        parse_clock(self.end)
        if self.mode not in ("sms", "silent"):
            raise ValueError(f"Invalid quiet hours mode: {self.mode}")


@dataclass(frozen=True)
class Policy:
    """When to call, batch, fall back, or stay quiet."""

    cooldown_seconds: float = 60
    batch_window_seconds: float = 10
    max_call_duration: int = 600
    call_on: dict[str, bool] = field(
        default_factory=lambda: dict(DEFAULT_CONFIG["policy"]["call_on"])
    )
    quiet_hours: QuietHours = field(default_factory=QuietHours)

    def is_enabled(self, event_name: str) -> bool:
        return bool(self.call_on.get(event_name, False))

    @classmethod
    def from_dict(cls, data: dict) -> "Policy":
        quiet = data.get("quiet_hours") or {}
        return cls(
            cooldown_seconds=data.get("cooldown_seconds", 60),
            batch_window_seconds=data.get("batch_window_seconds", 10),
            max_call_duration=data.get("max_call_duration", 600),
            call_on={k: bool(v) for k, v in (data.get("call_on") or {}).items()},
            quiet_hours=QuietHours(
                enabled=bool(quiet.get("enabled", True)),
                start=str(quiet.get("start", "23:00")),
                end=str(quiet.get("end", "07:00")),
                mode=str(quiet.get("mode", "sms")),
            ),
        )


@dataclass(frozen=True)
class BolnaConfig:
    api_key: str = ""
    agent_id: str = ""
    inbound_number: str = ""
    base_url: str = "https://api.bolna.ai"


@dataclass(frozen=True)
class DaemonConfig:
    host: str = "127.0.0.1"
    port: int = 7331
    log_level: str = "info"
    state_file: Path = Path("state.json")
    log_file: Path = Path("daemon.log")


@dataclass(frozen=True)
class SessionsConfig:
    auto_name: bool = True
    cleanup_after_minutes: float = 30


@dataclass(frozen=True)
class Config:
    mode: str
    phone: str
    daemon_token: str
    bolna: BolnaConfig
    daemon: DaemonConfig
    policy: Policy
    sessions: SessionsConfig

    @classmethod
    def from_dict(cls, raw: dict) -> "Config":
        """Build a Config from an already-merged config dict."""
        home = get_pingme_home()
        daemon = raw["daemon"]
        return cls(
            mode=raw["mode"],
            phone=raw["phone"],
            daemon_token=raw["daemon_token"],
            bolna=BolnaConfig(**_known(BolnaConfig, raw["bolna"])),
            daemon=DaemonConfig(
                host=daemon["host"],
                port=int(daemon["port"]),
                log_level=daemon["log_level"],
                state_file=Path(daemon["state_file"]).expanduser()
                if daemon["state_file"]
                else home / "state.json",
                log_file=Path(daemon["log_file"]).expanduser()
                if daemon["log_file"]
                else home / "daemon.log",
            ),
            policy=Policy.from_dict(raw["policy"]),
            sessions=SessionsConfig(**_known(SessionsConfig, raw["sessions"])),
        )


def ensure_daemon_token() -> str:
    """Return the stored daemon token, generating and saving one if missing."""
    config = read_config()
    token = config.get("daemon_token")
    if not token:
        token = generate_token()
        config["daemon_token"] = token
        write_config(config)
    return token


def load_config() -> Config:
    """Load the effective configuration.

    Returns:
        Config built from defaults, ~/.pingme/config.json and PINGME_* env vars.

    Raises:
        ValueError: If the policy section is invalid (e.g. bad quiet hours).
    """
    raw = _deep_merge(DEFAULT_CONFIG, read_config())
    raw = _apply_env_overrides(raw)
    if not raw.get("daemon_token"):
        raw["daemon_token"] = ensure_daemon_token()
    return Config.from_dict(raw)
