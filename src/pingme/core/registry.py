"""Session registry: the only code that mutates `DaemonState.sessions`.

Sessions are keyed naturally by (directory, tmux_pane). The first event for
an unseen pair creates a session with a fresh UUID; later events update that
session in place.
"""

import logging
import time
import uuid

from pingme.core.pending import extract_pending_action, extract_summary
from pingme.core.session import (
    MAX_RECENT_EVENTS,
    DaemonState,
    EventKind,
    EventRecord,
    HookEvent,
    Session,
    SessionStatus,
)

logger = logging.getLogger(__name__)

EVENT_STATUS: dict[EventKind, SessionStatus] = {
    EventKind.SESSION_START: SessionStatus.ACTIVE,
    EventKind.STOPPED: SessionStatus.STOPPED,
    EventKind.QUESTION: SessionStatus.ASKING,
    EventKind.PERMISSION: SessionStatus.PERMISSION,
    EventKind.SESSION_END: SessionStatus.ENDED,
    EventKind.TASK_COMPLETED: SessionStatus.ACTIVE,
    EventKind.TOOL_FAILED: SessionStatus.ACTIVE,
    EventKind.NOTIFICATION: SessionStatus.ACTIVE,
    EventKind.SUBAGENT_STOP: SessionStatus.ACTIVE,
    EventKind.SUBAGENT_START: SessionStatus.ACTIVE,
    EventKind.PRE_TOOL: SessionStatus.ACTIVE,
    EventKind.TEAMMATE_IDLE: SessionStatus.ACTIVE,
    EventKind.PRE_COMPACT: SessionStatus.ACTIVE,
    EventKind.PROMPT_SUBMIT: SessionStatus.ACTIVE,
    EventKind.OTHER: SessionStatus.ACTIVE,
}

if set(EVENT_STATUS) != set(EventKind):
    raise RuntimeError("EVENT_STATUS must map every EventKind")


def status_for(event_name: str) -> str:
    """Map an event name to the session status it implies."""
    return EVENT_STATUS[EventKind.from_name(event_name)].value


def _find_by_key(state: DaemonState, directory: str, pane: str) -> Session | None:
    for session in state.sessions.values():
        if session.directory == directory and session.tmux_pane == pane:
            return session
    return None


def apply_event(state: DaemonState, event: HookEvent) -> Session:
    """Register a new session or update an existing one from an event.

    Mutates `state` in place and returns the live Session object.
    """
    record = EventRecord(
        event=event.event,
        timestamp=event.timestamp,
        summary=extract_summary(event),
    )
    message = event.text("message")
    tool_name = event.text("tool_name")

    session = _find_by_key(state, event.directory, event.tmux_pane)
    if session is not None:
        session.status = status_for(event.event)
        session.last_event = event.event
        session.last_event_time = event.timestamp
        session.recent_events = (session.recent_events + [record])[-MAX_RECENT_EVENTS:]
        session.pending_action = extract_pending_action(event)
        if message:
            session.last_message = message[:500]
        if tool_name:
            session.last_tool = tool_name
        if event.kind is EventKind.STOPPED and event.text("reason"):
            session.stop_reason = event.text("reason")
        logger.debug("Updated session %s on %s", session.id, event.event)
        return session

    session_id = str(uuid.uuid4())
    session = Session(
        id=session_id,
        project=event.project,
        directory=event.directory,
        tmux_session=event.tmux_session,
        tmux_pane=event.tmux_pane,
        status=status_for(event.event),
        last_event=event.event,
        last_event_time=event.timestamp,
        recent_events=[record],
        last_message=message[:500],
        last_tool=tool_name,
        stop_reason="",
        registered_at=int(time.time() * 1000),
        session_name=event.project or f"session-{session_id[:8]}",
        pending_action=extract_pending_action(event),
    )
    state.sessions[session_id] = session
    logger.info(
        "Registered new session %s (%s) on pane %s",
        session_id,
        session.session_name,
        session.tmux_pane,
    )
    return session


def find_by_name(state: DaemonState, name: str) -> Session | None:
    """Find a session by friendly name.

    Exact case-insensitive match wins; otherwise the first session (in
    insertion order) whose name contains `name` is returned. Several
    substring matches are not disambiguated.
    """
    lower = name.lower()
    sessions = list(state.sessions.values())
    for session in sessions:
        if session.session_name.lower() == lower:
            return session
    for session in sessions:
        if lower in session.session_name.lower():
            return session
    return None


def find_by_pane(state: DaemonState, pane: str) -> Session | None:
    """Find a session by exact tmux pane address."""
    for session in state.sessions.values():
        if session.tmux_pane == pane:
            return session
    return None


def sweep_stale(
    state: DaemonState, max_age_minutes: float, now: float | None = None
) -> int:
    """Remove sessions idle for longer than `max_age_minutes`.

    Args:
        state: Daemon state to prune in place.
        max_age_minutes: Idle threshold.
        now: Current epoch seconds (defaults to time.time()).

    Returns:
        Number of sessions removed.
    """
    now = time.time() if now is None else now
    max_age = max_age_minutes * 60
    stale = [
        (session_id, session)
        for session_id, session in state.sessions.items()
        if now - session.last_event_time > max_age
    ]
    for session_id, session in stale:
        logger.info("Removing stale session %s (%s)", session_id, session.session_name)
        del state.sessions[session_id]
    return len(stale)


def list_active(state: DaemonState) -> list[Session]:
    """All sessions whose status is not "ended"."""
    return [
        s for s in state.sessions.values() if s.status != SessionStatus.ENDED.value
    ]
