"""Session and daemon-state dataclasses for pingme.

Everything the daemon keeps in memory lives on a single `DaemonState`
instance. The dataclasses here are plain containers; mutation rules live in
`pingme.core.registry` (sessions) and `pingme.daemon.calls` (calls).

All `to_dict()` output is JSON-safe and `from_dict()` accepts partial or
malformed input, defaulting missing fields instead of rejecting them.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

MAX_RECENT_EVENTS = 20
MAX_CALL_HISTORY = 50
MAX_QUEUE_DEPTH = 200


class EventKind(str, Enum):
    """Event names posted by the hook shim."""

    SESSION_START = "session_start"
    SESSION_END = "session_end"
    STOPPED = "stopped"
    QUESTION = "question"
    PERMISSION = "permission"
    TASK_COMPLETED = "task_completed"
    TOOL_FAILED = "tool_failed"
    NOTIFICATION = "notification"
    SUBAGENT_STOP = "subagent_stop"
    SUBAGENT_START = "subagent_start"
    PRE_TOOL = "pre_tool"
    TEAMMATE_IDLE = "teammate_idle"
    PRE_COMPACT = "pre_compact"
    PROMPT_SUBMIT = "prompt_submit"
    OTHER = "other"

    @classmethod
    def from_name(cls, name: str) -> "EventKind":
        """Map a raw event name to its kind, OTHER for names we don't know."""
        try:
            return cls(name)
        except ValueError:
            return cls.OTHER


class SessionStatus(str, Enum):
    ACTIVE = "active"
    STOPPED = "stopped"
    WAITING = "waiting"
    ASKING = "asking"
    PERMISSION = "permission"
    ENDED = "ended"


VALID_STATUSES = {s.value for s in SessionStatus}

# Sessions in these states are sitting at a prompt and can take keystrokes.
RECEIVABLE_STATUSES = {
    SessionStatus.STOPPED.value,
    SessionStatus.ASKING.value,
    SessionStatus.PERMISSION.value,
}

PENDING_ACTION_TYPES = {
    "permission",
    "question",
    "stopped",
    "task_completed",
    "tool_failed",
    "notification",
    "subagent_stop",
    "subagent_start",
    "session_start",
    "session_end",
    "pre_tool",
}


@dataclass
class HookEvent:
    """An event as posted by the hook shim to /hooks/event."""

    event: str
    directory: str
    project: str = ""
    tmux_session: str = ""
    tmux_pane: str = ""
    timestamp: float = 0
    payload: dict | None = None

    @property
    def kind(self) -> EventKind:
        return EventKind.from_name(self.event)

    def text(self, key: str) -> str:
        """Return a payload field as a string, empty if missing or falsy."""
        if not self.payload:
            return ""
        value = self.payload.get(key)
        return str(value) if value else ""

    @property
    def tool_input(self) -> dict:
        value = (self.payload or {}).get("tool_input")
        return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class EventRecord:
    """One event as remembered in a session's history or a live call."""

    event: str
    timestamp: float
    summary: str

    @classmethod
    def from_dict(cls, data: dict) -> "EventRecord":
        return cls(
            event=str(data.get("event", "")),
            timestamp=_number(data.get("timestamp"), 0),
            summary=str(data.get("summary", "")),
        )


@dataclass(frozen=True)
class PendingAction:
    """The latest actionable fact about a session.

    Attributes:
        type: One of PENDING_ACTION_TYPES
        summary: Short description (at most 300 chars)
        detail: Optional longer text (full command, error, etc.)
        options: Choice labels for questions
        tool_name: Tool involved, if any
        command: Shell command for Bash permission/pre-tool
        file_path: File involved for Write/Edit
    """

    type: str
    summary: str
    detail: str | None = None
    options: list[str] | None = None
    tool_name: str | None = None
    command: str | None = None
    file_path: str | None = None

    def __post_init__(self) -> None:
        """Validate pending action type."""
        if self.type not in PENDING_ACTION_TYPES:
            raise ValueError(f"Invalid pending action type: {self.type}")

    @classmethod
    def from_dict(cls, data: Any) -> "PendingAction | None":
        if not isinstance(data, dict) or data.get("type") not in PENDING_ACTION_TYPES:
            return None
        options = data.get("options")
        return cls(
            type=data["type"],
            summary=str(data.get("summary", "")),
            detail=data.get("detail"),
            options=[str(o) for o in options] if isinstance(options, list) else None,
            tool_name=data.get("tool_name"),
            command=data.get("command"),
            file_path=data.get("file_path"),
        )


@dataclass
class Session:
    """Represents one observed Claude Code session.

    Attributes:
        id: Random UUID assigned on first sight
        project: Project name reported by the shim
        directory: Working directory of the session
        tmux_session: tmux session name (used for has-session checks)
        tmux_pane: tmux pane address (send-keys target)
        status: One of VALID_STATUSES
        last_event: Name of the most recent event
        last_event_time: Epoch seconds of the most recent event
        recent_events: Last MAX_RECENT_EVENTS events, oldest first
        last_message: Last human-readable message (at most 500 chars)
        last_tool: Last tool name seen
        stop_reason: Reason from the last stopped event
        registered_at: Epoch ms when the daemon first saw the session
        session_name: Friendly name, defaults to project
        pending_action: Latest actionable fact, or None
    """

    id: str
    project: str
    directory: str
    tmux_session: str
    tmux_pane: str
    status: str = SessionStatus.ACTIVE.value
    last_event: str = ""
    last_event_time: float = 0
    recent_events: list[EventRecord] = field(default_factory=list)
    last_message: str = ""
    last_tool: str = ""
    stop_reason: str = ""
    registered_at: int = 0
    session_name: str = ""
    pending_action: PendingAction | None = None

    def __post_init__(self) -> None:
        """Validate session status."""
        if self.status not in VALID_STATUSES:
            raise ValueError(
                f"Invalid status: {self.status}. Must be one of {VALID_STATUSES}"
            )

    @property
    def can_receive_input(self) -> bool:
        return self.status in RECEIVABLE_STATUSES

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        status = data.get("status")
        if status not in VALID_STATUSES:
            status = SessionStatus.ACTIVE.value
        events = data.get("recent_events")
        return cls(
            id=str(data.get("id", "")),
            project=str(data.get("project", "")),
            directory=str(data.get("directory", "")),
            tmux_session=str(data.get("tmux_session", "")),
            tmux_pane=str(data.get("tmux_pane", "")),
            status=status,
            last_event=str(data.get("last_event", "")),
            last_event_time=_number(data.get("last_event_time"), 0),
            recent_events=[
                EventRecord.from_dict(e) for e in events if isinstance(e, dict)
            ][-MAX_RECENT_EVENTS:]
            if isinstance(events, list)
            else [],
            last_message=str(data.get("last_message", "")),
            last_tool=str(data.get("last_tool", "")),
            stop_reason=str(data.get("stop_reason", "")),
            registered_at=int(_number(data.get("registered_at"), 0)),
            session_name=str(data.get("session_name") or data.get("project", "")),
            pending_action=PendingAction.from_dict(data.get("pending_action")),
        )


@dataclass
class ActiveCall:
    """The single in-flight voice call."""

    bolna_execution_id: str
    started_at: int  # epoch ms
    direction: str = "outbound"
    trigger_event: str | None = None
    events_during_call: list[EventRecord] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "ActiveCall | None":
        if not isinstance(data, dict) or not data.get("bolna_execution_id"):
            return None
        events = data.get("events_during_call")
        return cls(
            bolna_execution_id=str(data["bolna_execution_id"]),
            started_at=int(_number(data.get("started_at"), 0)),
            direction=_direction(data.get("direction")),
            trigger_event=data.get("trigger_event"),
            events_during_call=[
                EventRecord.from_dict(e) for e in events if isinstance(e, dict)
            ]
            if isinstance(events, list)
            else [],
        )


@dataclass(frozen=True)
class CallRecord:
    """A finished call, kept in the bounded call history."""

    execution_id: str
    direction: str
    started_at: int
    ended_at: int
    duration_seconds: float
    trigger_event: str | None = None
    transcript_summary: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "CallRecord":
        return cls(
            execution_id=str(data.get("execution_id", "")),
            direction=_direction(data.get("direction")),
            started_at=int(_number(data.get("started_at"), 0)),
            ended_at=int(_number(data.get("ended_at"), 0)),
            duration_seconds=_number(data.get("duration_seconds"), 0),
            trigger_event=data.get("trigger_event"),
            transcript_summary=data.get("transcript_summary"),
        )


@dataclass
class QueuedInstruction:
    """An instruction waiting for its session to stop."""

    id: str
    target_session_id: str
    instruction: str
    queued_at: int
    deliver_on: str = "next_stop"
    delivered: bool = False
    delivered_at: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "QueuedInstruction":
        delivered_at = data.get("delivered_at")
        return cls(
            id=str(data.get("id", "")),
            target_session_id=str(data.get("target_session_id", "")),
            instruction=str(data.get("instruction", "")),
            queued_at=int(_number(data.get("queued_at"), 0)),
            deliver_on=str(data.get("deliver_on", "next_stop")),
            delivered=bool(data.get("delivered", False)),
            delivered_at=int(delivered_at) if isinstance(delivered_at, (int, float)) else None,
        )


@dataclass
class DaemonState:
    """Root aggregate; the unit of persistence."""

    sessions: dict[str, Session] = field(default_factory=dict)
    instruction_queue: list[QueuedInstruction] = field(default_factory=list)
    call_history: list[CallRecord] = field(default_factory=list)
    last_call_time: int | None = None
    active_call: ActiveCall | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "DaemonState":
        """Build state from parsed JSON, dropping anything malformed."""
        if not isinstance(data, dict):
            return cls()

        sessions: dict[str, Session] = {}
        raw_sessions = data.get("sessions")
        if isinstance(raw_sessions, dict):
            for session_id, raw in raw_sessions.items():
                if isinstance(raw, dict):
                    session = Session.from_dict({**raw, "id": raw.get("id") or session_id})
                    sessions[session.id] = session

        queue = data.get("instruction_queue")
        history = data.get("call_history")
        last_call_time = data.get("last_call_time")

        return cls(
            sessions=sessions,
            instruction_queue=[
                QueuedInstruction.from_dict(q) for q in queue if isinstance(q, dict)
            ]
            if isinstance(queue, list)
            else [],
            call_history=[
                CallRecord.from_dict(c) for c in history if isinstance(c, dict)
            ][-MAX_CALL_HISTORY:]
            if isinstance(history, list)
            else [],
            last_call_time=int(last_call_time)
            if isinstance(last_call_time, (int, float))
            else None,
            active_call=ActiveCall.from_dict(data.get("active_call")),
        )


def _number(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def _direction(value: Any) -> str:
    return value if value in ("inbound", "outbound") else "outbound"
