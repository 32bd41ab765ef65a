"""Turn raw hook payloads into PendingActions and one-line summaries.

These are pure functions of the event; the registry calls them but they
never touch daemon state.
"""

from pingme.core.session import EventKind, HookEvent, PendingAction

QUESTION_TOOL = "AskUserQuestion"


def _first_question(tool_input: dict) -> tuple[dict, int] | None:
    questions = tool_input.get("questions")
    if not isinstance(questions, list) or not questions:
        return None
    first = questions[0]
    if not isinstance(first, dict):
        return None
    return first, len(questions)


def extract_summary(event: HookEvent) -> str:
    """Build the short summary stored in a session's event history.

    Question-style events surface the question text; everything else uses
    the payload's message, tool name or reason, in that order.
    """
    if not event.payload:
        return event.event

    if event.kind in (EventKind.QUESTION, EventKind.PRE_TOOL):
        found = _first_question(event.tool_input)
        if found and found[0].get("question"):
            return f"{event.event}: {str(found[0]['question'])[:120]}"

    msg = event.text("message") or event.text("tool_name") or event.text("reason")
    if msg:
        return f"{event.event}: {msg[:120]}"
    return event.event


def parse_question_input(tool_input: dict) -> PendingAction | None:
    """Parse AskUserQuestion tool input into a question PendingAction.

    Only the first question is surfaced; options become "label - description"
    strings when a description is present.
    """
    found = _first_question(tool_input)
    if found is None:
        return None
    question, total = found

    text = str(question["question"]) if question.get("question") else "Unknown question"
    labels = []
    options = question.get("options")
    if isinstance(options, list):
        for option in options:
            if not isinstance(option, dict):
                continue
            label = str(option["label"]) if option.get("label") else ""
            desc = str(option["description"]) if option.get("description") else ""
            labels.append(f"{label} - {desc}" if desc else label)

    return PendingAction(
        type="question",
        summary=text[:300],
        detail=f"{total} questions total" if total > 1 else None,
        options=labels or None,
        tool_name=QUESTION_TOOL,
    )


def _permission(event: HookEvent) -> PendingAction:
    tool_name = event.text("tool_name") or None
    tool_input = event.tool_input

    if tool_name == "Bash" and tool_input.get("command"):
        cmd = str(tool_input["command"])
        return PendingAction(
            type="permission",
            summary=f"Wants to run: {cmd[:200]}",
            detail=cmd if len(cmd) > 200 else None,
            tool_name=tool_name,
            command=cmd,
        )

    if tool_name == "Write" and tool_input.get("file_path"):
        path = str(tool_input["file_path"])
        return PendingAction(
            type="permission",
            summary=f"Wants to create file: {path}",
            tool_name=tool_name,
            file_path=path,
        )

    if tool_name == "Edit" and tool_input.get("file_path"):
        path = str(tool_input["file_path"])
        old = tool_input.get("old_string")
        return PendingAction(
            type="permission",
            summary=f"Wants to edit: {path}",
            detail=str(old)[:100] if old else None,
            tool_name=tool_name,
            file_path=path,
        )

    return PendingAction(
        type="permission",
        summary=f"Needs permission to use {tool_name}" if tool_name else "Needs permission",
        tool_name=tool_name,
    )


def _pre_tool(event: HookEvent) -> PendingAction | None:
    tool_name = event.text("tool_name")
    tool_input = event.tool_input

    if tool_name == QUESTION_TOOL:
        parsed = parse_question_input(tool_input)
        if parsed:
            return parsed

    if not tool_name:
        return None

    summary = f"About to use {tool_name}"
    if tool_name == "Bash" and tool_input.get("command"):
        summary = f"About to run: {str(tool_input['command'])[:200]}"
    elif tool_name in ("Write", "Edit") and tool_input.get("file_path"):
        verb = "create" if tool_name == "Write" else "edit"
        summary = f"About to {verb}: {tool_input['file_path']}"

    return PendingAction(
        type="pre_tool",
        summary=summary,
        tool_name=tool_name,
        command=str(tool_input["command"]) if tool_input.get("command") else None,
        file_path=str(tool_input["file_path"]) if tool_input.get("file_path") else None,
    )


def extract_pending_action(event: HookEvent) -> PendingAction | None:
    """Derive the PendingAction for an event.

    Args:
        event: The incoming hook event.

    Returns:
        A PendingAction, or None for kinds that carry nothing actionable
        (teammate_idle, pre_compact, prompt_submit, unknown names).
    """
    kind = event.kind
    message = event.text("message")

    if kind is EventKind.PERMISSION:
        return _permission(event)

    if kind is EventKind.QUESTION:
        parsed = parse_question_input(event.tool_input)
        if parsed:
            return parsed
        return PendingAction(
            type="question",
            summary=(message or "Agent is asking a question")[:300],
            tool_name=QUESTION_TOOL,
        )

    if kind is EventKind.STOPPED:
        reason = event.text("reason")
        return PendingAction(
            type="stopped",
            summary=f"Stopped: {reason}" if reason else "Stopped",
            detail=message or None,
        )

    if kind is EventKind.TASK_COMPLETED:
        return PendingAction(
            type="task_completed",
            summary=f"Task completed: {message[:200]}" if message else "Task completed",
            detail=message if len(message) > 200 else None,
        )

    if kind is EventKind.TOOL_FAILED:
        tool_name = event.text("tool_name")
        error = event.text("error") or message
        prefix = f"{tool_name} failed" if tool_name else "Tool failed"
        return PendingAction(
            type="tool_failed",
            summary=f"{prefix}: {error[:200]}",
            detail=error if len(error) > 200 else None,
            tool_name=tool_name or None,
        )

    if kind is EventKind.NOTIFICATION:
        return PendingAction(
            type="notification", summary=(message or "Notification")[:300]
        )

    if kind is EventKind.SUBAGENT_STOP:
        name = event.text("subagent_name")
        return PendingAction(
            type="subagent_stop",
            summary=f'Subagent "{name}" finished' if name else "Subagent finished",
            detail=message or None,
        )

    if kind is EventKind.SUBAGENT_START:
        name = event.text("subagent_name")
        return PendingAction(
            type="subagent_start",
            summary=f'Subagent "{name}" started' if name else "Subagent started",
            detail=event.text("description") or None,
        )

    if kind is EventKind.SESSION_START:
        return PendingAction(type="session_start", summary="Session started")

    if kind is EventKind.SESSION_END:
        return PendingAction(type="session_end", summary="Session ended")

    if kind is EventKind.PRE_TOOL:
        return _pre_tool(event)

    if kind in (
        EventKind.TEAMMATE_IDLE,
        EventKind.PRE_COMPACT,
        EventKind.PROMPT_SUBMIT,
        EventKind.OTHER,
    ):
        return None

    raise ValueError(f"Unhandled event kind: {kind}")
