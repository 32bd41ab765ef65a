"""Decision engine: (event, state, policy) -> what to do about it.

`decide()` is pure apart from reading the clock, and the clock can be
injected through `now`. It never mutates state.
"""

from dataclasses import dataclass
from datetime import datetime

from pingme.core.config import Policy, parse_clock
from pingme.core.session import DaemonState, EventKind, EventRecord, HookEvent

# Normal stop reasons: the agent finished its turn, nothing to report.
SILENT_STOP_REASONS = {"end_turn", "max_turns"}


@dataclass(frozen=True)
class CallAction:
    reason: str
    priority: str  # "high" | "normal"


@dataclass(frozen=True)
class BatchAction:
    event: EventRecord


@dataclass(frozen=True)
class FallbackAction:
    message: str


@dataclass(frozen=True)
class IgnoreAction:
    pass


Action = CallAction | BatchAction | FallbackAction | IgnoreAction


def to_event_record(event: HookEvent) -> EventRecord:
    """Convert an event into the record used for batching."""
    message = event.text("message")
    summary = f"{event.event}: {message[:120]}" if message else event.event
    return EventRecord(event=event.event, timestamp=event.timestamp, summary=summary)


def format_fallback(event: HookEvent) -> str:
    """Format a one-line fallback (SMS) message for an event."""
    project = event.project or "unknown"
    kind = event.kind
    message = event.text("message")

    if kind is EventKind.STOPPED:
        reason = event.text("reason")
        return f"[pingme] {project} stopped" + (f": {reason}" if reason else "")
    if kind is EventKind.QUESTION:
        return f"[pingme] {project} is asking: {message or 'needs input'}"
    if kind is EventKind.PERMISSION:
        return f"[pingme] {project} needs permission" + (f": {message}" if message else "")
    if kind is EventKind.TASK_COMPLETED:
        return f"[pingme] {project} completed a task"
    if kind is EventKind.TOOL_FAILED:
        return f"[pingme] {project} tool failed: {event.text('tool_name') or 'unknown'}"
    return f"[pingme] {project}: {event.event}"


def voice_reason(event: HookEvent) -> str:
    """Build the spoken reason for a call triggered by this event."""
    project = event.project or "a session"
    kind = event.kind
    tool_name = event.text("tool_name")
    tool_input = event.tool_input

    if kind is EventKind.PERMISSION:
        if tool_name == "Bash" and tool_input.get("command"):
            return f"{project} needs permission to run a command"
        if tool_name in ("Write", "Edit"):
            return f"{project} needs permission to modify a file"
        return f"{project} needs your permission"

    if kind is EventKind.QUESTION:
        questions = tool_input.get("questions")
        if (
            isinstance(questions, list)
            and questions
            and isinstance(questions[0], dict)
            and questions[0].get("question")
        ):
            return f"{project} has a question for you"
        return f"{project} needs your input"

    if kind is EventKind.STOPPED:
        reason = event.text("reason")
        if reason and reason not in SILENT_STOP_REASONS:
            return f"{project} stopped unexpectedly"
        return f"{project} finished and stopped"

    if kind is EventKind.TASK_COMPLETED:
        return f"{project} completed a task"

    return f"{project} needs attention"


def is_quiet_hours(policy: Policy, now: datetime | None = None) -> bool:
    """Check whether `now` falls inside the policy's quiet hours.

    A window whose start is later than its end wraps past midnight.
    """
    quiet = policy.quiet_hours
    if not quiet.enabled:
        return False

    now = now or datetime.now()
    current = now.hour * 60 + now.minute
    start = parse_clock(quiet.start)
    end = parse_clock(quiet.end)

    if start > end:
        return current >= start or current < end
    return start <= current < end


def in_cooldown(state: DaemonState, policy: Policy, now: datetime | None = None) -> bool:
    """True if the last call started less than cooldown_seconds ago."""
    if not state.last_call_time:
        return False
    now_ms = (now or datetime.now()).timestamp() * 1000
    return now_ms - state.last_call_time < policy.cooldown_seconds * 1000


def decide(
    event: HookEvent,
    state: DaemonState,
    policy: Policy,
    now: datetime | None = None,
) -> Action:
    """Decide how to notify about an event.

    Rules, first match wins:
        1. session_start / session_end / notification are ignored.
        2. A live call absorbs everything as a batch.
        3. Quiet hours fall back or stay silent depending on mode.
        4. Inside the cooldown window everything falls back.
        5. permission / question call at high priority if enabled.
        6. stopped is ignored for normal stop reasons, else batched.
        7. task_completed is batched if enabled.
        8. Everything else is ignored.

    Args:
        event: The incoming event.
        state: Current daemon state (read only).
        policy: Call policy.
        now: Wall-clock time to evaluate against; defaults to now.

    Returns:
        Exactly one of CallAction, BatchAction, FallbackAction, IgnoreAction.
    """
    now = now or datetime.now()
    kind = event.kind

    if kind in (EventKind.SESSION_START, EventKind.SESSION_END, EventKind.NOTIFICATION):
        return IgnoreAction()

    if state.active_call is not None:
        return BatchAction(event=to_event_record(event))

    if is_quiet_hours(policy, now):
        if policy.quiet_hours.mode == "sms":
            return FallbackAction(message=format_fallback(event))
        return IgnoreAction()

    if in_cooldown(state, policy, now):
        return FallbackAction(message=format_fallback(event))

    enabled = policy.is_enabled(event.event)

    if kind in (EventKind.PERMISSION, EventKind.QUESTION):
        if enabled:
            return CallAction(reason=voice_reason(event), priority="high")
        return FallbackAction(message=format_fallback(event))

    if kind is EventKind.STOPPED:
        if event.text("reason") in SILENT_STOP_REASONS:
            return IgnoreAction()
        if enabled:
            return BatchAction(event=to_event_record(event))
        return FallbackAction(message=format_fallback(event))

    if kind is EventKind.TASK_COMPLETED:
        if enabled:
            return BatchAction(event=to_event_record(event))
        return FallbackAction(message=format_fallback(event))

    return IgnoreAction()
