"""Tests for the call orchestrator."""

import asyncio
import time

import pytest

from pingme.core.registry import apply_event
from pingme.core.session import MAX_CALL_HISTORY, ActiveCall, DaemonState, EventRecord
from pingme.core.state import load_state
from pingme.daemon.calls import CallOrchestrator
from tests.helpers import FakeProvider, make_config, make_event


def _record(summary: str) -> EventRecord:
    return EventRecord(event="stopped", timestamp=0, summary=summary)


def _orchestrator(provider, **config_overrides) -> CallOrchestrator:
    return CallOrchestrator(DaemonState(), make_config(**config_overrides), provider)


@pytest.mark.asyncio
async def test_trigger_call_installs_active_call_and_persists(config, provider):
    calls = CallOrchestrator(DaemonState(), config, provider)

    assert await calls.trigger_call("api needs your permission", "high")

    active = calls.state.active_call
    assert active.bolna_execution_id == "exec-1"
    assert active.trigger_event == "api needs your permission"
    assert calls.state.last_call_time == active.started_at
    assert provider.calls[0]["agent_id"] == "agent-1"
    assert provider.calls[0]["phone"] == "+15550100"
    assert load_state(config.daemon.state_file).active_call == active


@pytest.mark.asyncio
async def test_user_data_counts_sessions_needing_attention(config, provider):
    calls = CallOrchestrator(DaemonState(), config, provider)
    apply_event(calls.state, make_event("permission", tmux_pane="main:0.1"))
    apply_event(calls.state, make_event("pre_tool", tmux_pane="main:0.2"))
    apply_event(calls.state, make_event("session_end", tmux_pane="main:0.3"))

    await calls.trigger_call("reason", "normal")

    assert provider.calls[0]["user_data"] == {
        "trigger_reason": "reason",
        "session_count": "2",
        "needs_attention": "1",
    }


@pytest.mark.asyncio
async def test_back_to_back_triggers_make_one_call(config, provider):
    calls = CallOrchestrator(DaemonState(), config, provider)

    assert await calls.trigger_call("first", "high")
    assert not await calls.trigger_call("second", "high")

    assert len(provider.calls) == 1
    assert calls.state.active_call.trigger_event == "first"


@pytest.mark.asyncio
async def test_concurrent_triggers_make_one_call(config):
    gate = asyncio.Event()
    provider = FakeProvider(gate=gate)
    calls = CallOrchestrator(DaemonState(), config, provider)

    first = asyncio.create_task(calls.trigger_call("first", "high"))
    await asyncio.sleep(0)
    assert calls.busy
    second = await calls.trigger_call("second", "high")
    gate.set()

    assert await first is True
    assert second is False
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_provider_failure_leaves_state_untouched(config):
    calls = CallOrchestrator(DaemonState(), config, FakeProvider(fail=True))

    assert not await calls.trigger_call("reason", "high")

    assert calls.state.active_call is None
    assert calls.state.last_call_time is None
    assert not calls.busy


@pytest.mark.asyncio
async def test_missing_credentials_skip_call(provider):
    calls = _orchestrator(provider, phone="")

    assert not await calls.trigger_call("reason", "high")
    assert provider.calls == []


@pytest.mark.asyncio
async def test_batch_debounce_flushes_once_in_order(provider):
    calls = _orchestrator(provider, policy={"batch_window_seconds": 0.05})

    for summary in ("api: stopped", "web: task_completed", "cli: stopped"):
        calls.add_to_batch(_record(summary))
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.2)

    assert len(provider.calls) == 1
    assert (
        provider.calls[0]["user_data"]["trigger_reason"]
        == "api: stopped; web: task_completed; cli: stopped"
    )
    assert calls.pending_batch == []


@pytest.mark.asyncio
async def test_new_event_resets_batch_window(provider):
    calls = _orchestrator(provider, policy={"batch_window_seconds": 0.1})

    calls.add_to_batch(_record("one"))
    await asyncio.sleep(0.06)
    calls.add_to_batch(_record("two"))
    await asyncio.sleep(0.06)
    assert provider.calls == []

    await asyncio.sleep(0.15)
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_cancel_batch_drops_pending_events(provider):
    calls = _orchestrator(provider, policy={"batch_window_seconds": 0.05})

    calls.add_to_batch(_record("one"))
    calls.cancel_batch()
    await asyncio.sleep(0.1)

    assert provider.calls == []
    assert calls.pending_batch == []


@pytest.mark.asyncio
async def test_shutdown_cancels_timer(provider):
    calls = _orchestrator(provider, policy={"batch_window_seconds": 0.05})

    calls.add_to_batch(_record("one"))
    calls.shutdown()
    await asyncio.sleep(0.1)

    assert provider.calls == []


@pytest.mark.asyncio
async def test_on_call_end_is_idempotent(config, provider):
    calls = CallOrchestrator(DaemonState(), config, provider)
    await calls.trigger_call("reason", "high")

    record = await calls.on_call_end("exec-1", transcript="t" * 600, duration=42)
    again = await calls.on_call_end("exec-1")

    assert again is None
    assert calls.state.call_history == [record]
    assert record.duration_seconds == 42
    assert len(record.transcript_summary) == 500
    assert record.trigger_event == "reason"
    assert calls.state.active_call is None
    assert load_state(config.daemon.state_file).call_history == [record]


@pytest.mark.asyncio
async def test_call_history_keeps_last_fifty(config, provider):
    calls = CallOrchestrator(DaemonState(), config, provider)

    for i in range(60):
        await calls.trigger_call(f"call {i}", "normal")
        await calls.on_call_end(calls.state.active_call.bolna_execution_id)

    history = calls.state.call_history
    assert len(history) == MAX_CALL_HISTORY
    assert [r.execution_id for r in history] == [f"exec-{i}" for i in range(11, 61)]


def _with_active_call(config, started_at: int) -> CallOrchestrator:
    state = DaemonState(active_call=ActiveCall(bolna_execution_id="exec-9", started_at=started_at))
    return CallOrchestrator(state, config, FakeProvider())


def _now_ms() -> int:
    return int(time.time() * 1000)


@pytest.mark.asyncio
async def test_webhook_with_matching_id_ends_call(config):
    calls = _with_active_call(config, _now_ms())

    record = await calls.handle_webhook({"executionId": "exec-9", "status": "completed", "duration": 12})

    assert record.execution_id == "exec-9"
    assert record.duration_seconds == 12
    assert calls.state.active_call is None


@pytest.mark.asyncio
async def test_webhook_with_other_id_is_ignored(config):
    calls = _with_active_call(config, _now_ms() - 60_000)

    assert await calls.handle_webhook({"execution_id": "exec-1", "status": "completed"}) is None
    assert calls.state.active_call is not None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["in-progress", "ringing", None, ["completed"], {"state": "completed"}, 7])
async def test_non_terminal_or_malformed_status_is_ignored(config, status):
    calls = _with_active_call(config, _now_ms())
    assert await calls.handle_webhook({"execution_id": "exec-9", "status": status}) is None
    assert calls.state.active_call is not None


@pytest.mark.asyncio
async def test_webhook_without_id_needs_grace_period(config):
    fresh = _with_active_call(config, _now_ms())
    assert await fresh.handle_webhook({"status": "failed"}) is None
    assert fresh.state.active_call is not None

    aged = _with_active_call(config, _now_ms() - 10_000)
    record = await aged.handle_webhook({"status": "failed"})
    assert record.execution_id == "exec-9"
    assert aged.state.active_call is None


@pytest.mark.asyncio
async def test_webhook_without_active_call_is_noop(config):
    calls = CallOrchestrator(DaemonState(), config, FakeProvider())
    assert await calls.handle_webhook({"execution_id": "exec-1", "status": "completed"}) is None
    assert calls.state.call_history == []
