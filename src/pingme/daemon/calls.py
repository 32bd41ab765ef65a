"""Call orchestrator: batching timer, outbound calls and active call tracking.

Runs on the daemon's event loop. The single ActiveCall slot lives on the
shared DaemonState; this class is the only code that sets or clears it.
"""

import asyncio
import logging
import time
from typing import Protocol

from pingme.bolna.client import BolnaError
from pingme.core.config import Config
from pingme.core.registry import list_active
from pingme.core.session import (
    MAX_CALL_HISTORY,
    RECEIVABLE_STATUSES,
    ActiveCall,
    CallRecord,
    DaemonState,
    EventRecord,
)
from pingme.core.state import dump_state, write_state

logger = logging.getLogger(__name__)

TERMINAL_CALL_STATUSES = {
    "completed",
    "failed",
    "no-answer",
    "busy",
    "voicemail",
    "error",
    "carrier",
    "call-disconnected",
}

# A webhook without an execution id may only end a call older than this.
MISSING_ID_GRACE_MS = 5000

EXECUTION_ID_KEYS = ("execution_id", "executionId", "call_id", "id")


class CallProvider(Protocol):
    async def make_call(self, agent_id: str, phone: str, user_data: dict) -> str: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


class CallOrchestrator:
    """Owns the ActiveCall slot and the batch window.

    Args:
        state: Shared daemon state.
        config: Effective configuration.
        provider: Voice provider (BolnaClient in production).
    """

    def __init__(self, state: DaemonState, config: Config, provider: CallProvider):
        self.state = state
        self.config = config
        self.provider = provider
        self._batch: list[EventRecord] = []
        self._timer: asyncio.Task | None = None
        self._dialing = False
        self._save_lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        """True while a call is live or a provider request is in flight."""
        return self.state.active_call is not None or self._dialing

    @property
    def pending_batch(self) -> list[EventRecord]:
        return list(self._batch)

    async def persist(self) -> None:
        """Save state, logging instead of raising on failure.

        The snapshot is taken on the event loop; the fsync'd write runs in a
        worker thread. Saves are serialized so an older snapshot never lands
        after a newer one.
        """
        async with self._save_lock:
            data = dump_state(self.state)
            try:
                await asyncio.to_thread(write_state, data, self.config.daemon.state_file)
            except OSError as e:
                logger.error(f"Failed to persist state: {e}")

    def add_to_batch(self, event: EventRecord) -> None:
        """Queue an event and (re)start the batch window.

        Every new event resets the countdown; when it expires all queued
        events are flushed into a single call.
        """
        self._batch.append(event)
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(
            self._flush_after(self.config.policy.batch_window_seconds)
        )
        logger.debug(f"Event batched: {event.event} (batch size {len(self._batch)})")

    async def _flush_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Past this point a new add_to_batch starts a fresh window.
        self._timer = None
        await self.flush_batch()

    async def flush_batch(self) -> None:
        """Trigger one call for everything batched so far."""
        if not self._batch:
            return
        events, self._batch = self._batch, []
        reason = "; ".join(e.summary for e in events)
        logger.info(f"Batch window expired with {len(events)} event(s), triggering call")
        await self.trigger_call(reason, "normal")

    def cancel_batch(self) -> None:
        """Drop the pending batch without calling."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._batch = []

    async def trigger_call(self, reason: str, priority: str) -> bool:
        """Start an outbound call unless one is already live.

        Exclusivity is claimed before the provider request is awaited, so two
        triggers racing on the event loop produce a single call.

        Returns:
            True if a call was started.
        """
        if self.busy:
            logger.info(f"Already on a call, skipping outbound: {reason}")
            return False

        bolna = self.config.bolna
        if not bolna.api_key or not bolna.agent_id or not self.config.phone:
            logger.warning("Cannot make outbound call: missing bolna config or phone number")
            return False

        sessions = list_active(self.state)
        needs_attention = sum(1 for s in sessions if s.status in RECEIVABLE_STATUSES)
        user_data = {
            "trigger_reason": reason,
            "session_count": str(len(sessions)),
            "needs_attention": str(needs_attention),
        }

        logger.info(f"Triggering outbound call ({priority}): {reason}")
        self._dialing = True
        try:
            execution_id = await self.provider.make_call(
                bolna.agent_id, self.config.phone, user_data
            )
        except BolnaError as e:
            logger.error(f"Failed to trigger outbound call: {e}")
            return False
        finally:
            self._dialing = False

        now = _now_ms()
        self.state.active_call = ActiveCall(
            bolna_execution_id=execution_id,
            started_at=now,
            direction="outbound",
            trigger_event=reason,
        )
        self.state.last_call_time = now
        await self.persist()
        logger.info(f"Outbound call initiated: {execution_id}")
        return True

    async def on_call_end(
        self,
        execution_id: str,
        transcript: str | None = None,
        duration: float | None = None,
        recording_url: str | None = None,
    ) -> CallRecord | None:
        """Close the active call and record it in history.

        A second call for an already-ended call is a logged no-op.

        Returns:
            The new CallRecord, or None if no call was active.
        """
        active = self.state.active_call
        if active is None:
            logger.warning(f"Received call end but no active call tracked: {execution_id}")
            return None

        now = _now_ms()
        record = CallRecord(
            execution_id=execution_id,
            direction=active.direction,
            started_at=active.started_at,
            ended_at=now,
            duration_seconds=duration
            if duration is not None
            else (now - active.started_at) // 1000,
            trigger_event=active.trigger_event,
            transcript_summary=transcript[:500] if transcript else None,
        )
        self.state.call_history = (self.state.call_history + [record])[-MAX_CALL_HISTORY:]
        self.state.active_call = None
        await self.persist()

        logger.info(
            f"Call ended: {execution_id} ({record.duration_seconds}s, {record.direction})"
            + (f", recording {recording_url}" if recording_url else "")
        )
        return record

    async def handle_webhook(self, body: dict) -> CallRecord | None:
        """Reconcile a provider status webhook with the active call.

        Terminal statuses end the active call when the execution id matches.
        A webhook with no id is accepted only once the call is older than
        MISSING_ID_GRACE_MS. Anything else is logged and ignored.
        """
        execution_id = next(
            (str(body[k]) for k in EXECUTION_ID_KEYS if body.get(k)), None
        )
        status = body.get("status")
        if not isinstance(status, str):
            status = None
        transcript = body.get("transcript")
        duration = body.get("duration")
        recording_url = body.get("recording_url")

        logger.info(f"Bolna webhook: execution_id={execution_id} status={status}")

        active = self.state.active_call
        if active is None or status not in TERMINAL_CALL_STATUSES:
            return None

        extra = {
            "transcript": transcript if isinstance(transcript, str) else None,
            "duration": duration
            if isinstance(duration, (int, float)) and not isinstance(duration, bool)
            else None,
            "recording_url": recording_url if isinstance(recording_url, str) else None,
        }

        if execution_id == active.bolna_execution_id:
            return await self.on_call_end(execution_id, **extra)

        if execution_id is None:
            age = _now_ms() - active.started_at
            if age > MISSING_ID_GRACE_MS:
                logger.warning(
                    f"Webhook missing execution_id, clearing active call by age ({age}ms)"
                )
                return await self.on_call_end(active.bolna_execution_id, **extra)
            logger.warning(f"Webhook missing execution_id and call too fresh ({age}ms), ignoring")
            return None

        logger.warning(
            f"Webhook execution_id mismatch, ignoring: got {execution_id}, "
            f"expected {active.bolna_execution_id}"
        )
        return None

    def shutdown(self) -> None:
        """Cancel the batch window. An in-flight call is left to the provider."""
        self.cancel_batch()
