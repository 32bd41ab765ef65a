"""Tests for PendingAction extraction and event summaries."""

import pytest

from pingme.core.pending import extract_pending_action, extract_summary, parse_question_input
from pingme.core.session import EventKind
from tests.helpers import make_event


def test_bash_permission():
    action = extract_pending_action(
        make_event(
            "permission",
            payload={"tool_name": "Bash", "tool_input": {"command": "rm important.txt"}},
        )
    )
    assert action.type == "permission"
    assert action.summary == "Wants to run: rm important.txt"
    assert action.command == "rm important.txt"
    assert action.detail is None


def test_long_bash_command_keeps_full_detail():
    cmd = "echo " + "x" * 300
    action = extract_pending_action(
        make_event("permission", payload={"tool_name": "Bash", "tool_input": {"command": cmd}})
    )
    assert len(action.summary) == len("Wants to run: ") + 200
    assert action.detail == cmd


def test_write_and_edit_permissions():
    write = extract_pending_action(
        make_event("permission", payload={"tool_name": "Write", "tool_input": {"file_path": "a.py"}})
    )
    edit = extract_pending_action(
        make_event(
            "permission",
            payload={"tool_name": "Edit", "tool_input": {"file_path": "b.py", "old_string": "foo"}},
        )
    )
    assert write.summary == "Wants to create file: a.py"
    assert write.file_path == "a.py"
    assert edit.summary == "Wants to edit: b.py"
    assert edit.detail == "foo"


def test_permission_for_other_tool():
    action = extract_pending_action(make_event("permission", payload={"tool_name": "WebFetch"}))
    assert action.summary == "Needs permission to use WebFetch"
    assert extract_pending_action(make_event("permission")).summary == "Needs permission"


def test_question_with_options():
    action = extract_pending_action(
        make_event(
            "question",
            payload={
                "tool_input": {
                    "questions": [
                        {
                            "question": "Which database?",
                            "options": [
                                {"label": "Postgres", "description": "relational"},
                                {"label": "Redis"},
                            ],
                        },
                        {"question": "Second?"},
                    ]
                }
            },
        )
    )
    assert action.type == "question"
    assert action.summary == "Which database?"
    assert action.options == ["Postgres - relational", "Redis"]
    assert action.detail == "2 questions total"


def test_question_without_tool_input_uses_message():
    action = extract_pending_action(make_event("question", payload={"message": "Proceed?"}))
    assert action.summary == "Proceed?"
    assert extract_pending_action(make_event("question")).summary == "Agent is asking a question"


def test_parse_question_input_rejects_bad_shapes():
    assert parse_question_input({}) is None
    assert parse_question_input({"questions": []}) is None
    assert parse_question_input({"questions": ["text"]}) is None


def test_stopped_and_task_completed():
    stopped = extract_pending_action(make_event("stopped", payload={"reason": "error"}))
    done = extract_pending_action(make_event("task_completed", payload={"message": "Built it"}))
    assert stopped.summary == "Stopped: error"
    assert done.summary == "Task completed: Built it"


def test_tool_failed():
    action = extract_pending_action(
        make_event("tool_failed", payload={"tool_name": "Bash", "error": "exit 1"})
    )
    assert action.summary == "Bash failed: exit 1"


def test_pre_tool_for_question_tool_is_a_question():
    action = extract_pending_action(
        make_event(
            "pre_tool",
            payload={
                "tool_name": "AskUserQuestion",
                "tool_input": {"questions": [{"question": "Ship it?"}]},
            },
        )
    )
    assert action.type == "question"
    assert action.summary == "Ship it?"


def test_pre_tool_bash():
    action = extract_pending_action(
        make_event("pre_tool", payload={"tool_name": "Bash", "tool_input": {"command": "ls"}})
    )
    assert action.type == "pre_tool"
    assert action.summary == "About to run: ls"
    assert extract_pending_action(make_event("pre_tool")) is None


@pytest.mark.parametrize("name", ["teammate_idle", "pre_compact", "prompt_submit", "brand_new"])
def test_kinds_without_pending_action(name):
    assert extract_pending_action(make_event(name)) is None


def test_every_kind_is_handled():
    for kind in EventKind:
        extract_pending_action(make_event(kind.value))


def test_extract_summary():
    assert extract_summary(make_event("stopped")) == "stopped"
    assert extract_summary(make_event("stopped", payload={"reason": "error"})) == "stopped: error"
    assert (
        extract_summary(
            make_event("question", payload={"tool_input": {"questions": [{"question": "Why?"}]}})
        )
        == "question: Why?"
    )
    long_message = "m" * 500
    summary = extract_summary(make_event("notification", payload={"message": long_message}))
    assert summary == "notification: " + "m" * 120
