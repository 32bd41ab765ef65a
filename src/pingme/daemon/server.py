"""
pingme daemon server - FastAPI app the hook shim, CLI and voice agent talk to.

Endpoints:
- POST /hooks/event - lifecycle event from a hook shim
- GET /sessions - redacted session list (optional session_name filter)
- POST /route - send (or queue) an instruction to a session
- POST /action - approve / deny / cancel / status for a session
- POST /webhooks/bolna - call status webhook from the voice provider
- GET /status - sessions, active call, recent calls, queue depth
- POST /sessions/{pane}/name - rename the session at a pane
- POST /call - trigger an outbound call now
- GET /health - liveness probe

Everything except /health and /webhooks/bolna requires
`Authorization: Bearer <daemon_token>`. The webhook is unauthenticated
because the provider can't send a token; see CallOrchestrator.handle_webhook
for how it is reconciled.

All handlers run on one event loop and share a single DaemonState. tmux
delivery and state-file writes run in worker threads via asyncio.to_thread;
state itself is only mutated on the loop.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Callable

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from pingme.bolna.client import BolnaClient
from pingme.core import tmux
from pingme.core.config import Config
from pingme.core.decision import BatchAction, CallAction, FallbackAction, decide
from pingme.core.format import humanize_age
from pingme.core.registry import apply_event, find_by_name, find_by_pane, list_active, sweep_stale
from pingme.core.security import is_instruction_safe, is_valid_tmux_target, verify_token
from pingme.core.session import (
    DaemonState,
    EventKind,
    EventRecord,
    HookEvent,
    Session,
    SessionStatus,
)
from pingme.core.state import load_state
from pingme.core.tmux import DeliveryResult
from pingme.daemon.calls import CallOrchestrator, CallProvider
from pingme.daemon.queue import (
    deliver_queued,
    drop_orphaned,
    enqueue,
    prune_queue,
    undelivered_count,
)

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 5 * 60
RECENT_CALLS = 10
STATUS_EVENTS = 10


# =============================================================================
# Request Models
# =============================================================================

class HookEventRequest(BaseModel):
    """Event posted by the hook shim. event/directory are checked by hand (400, not 422)."""
    event: str | None = None
    directory: str | None = None
    project: str = ""
    tmux_session: str = ""
    tmux_pane: str = ""
    timestamp: float | None = None
    payload: dict[str, Any] | None = None


class RouteRequest(BaseModel):
    session_name: str | None = None
    instruction: str | None = None
    queue_if_busy: bool | str = False


class ActionRequest(BaseModel):
    session_name: str | None = None
    action: str | None = None


class RenameRequest(BaseModel):
    name: str | None = None


class CallRequest(BaseModel):
    reason: str | None = None


# =============================================================================
# Daemon
# =============================================================================

class Daemon:
    """Shared state for the daemon server."""

    def __init__(self, config: Config, provider: CallProvider | None = None):
        self.config = config
        self._owns_provider = provider is None
        self.provider: CallProvider = provider or BolnaClient(
            config.bolna.api_key, base_url=config.bolna.base_url
        )
        self.state = DaemonState()
        self.calls = CallOrchestrator(self.state, config, self.provider)
        self.started_at = time.monotonic()
        self._shutdown_event: asyncio.Event | None = None
        self._sweep_task: asyncio.Task | None = None

    @property
    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self.started_at)

    async def persist(self) -> None:
        await self.calls.persist()

    async def start(self) -> None:
        """Load persisted state, clear a stale call and start the sweep."""
        self.started_at = time.monotonic()
        self.state = load_state(self.config.daemon.state_file)
        self.calls = CallOrchestrator(self.state, self.config, self.provider)
        if self.state.active_call is not None:
            logger.warning("Found active call from previous run, clearing")
            self.state.active_call = None
            await self.persist()

        self._shutdown_event = asyncio.Event()
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the sweep and batch timer, close the provider, save state."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()
        if self._sweep_task is not None:
            try:
                await asyncio.wait_for(self._sweep_task, timeout=5.0)
            except asyncio.TimeoutError:
                self._sweep_task.cancel()
        self.calls.shutdown()
        if self._owns_provider:
            await self.provider.aclose()
        await self.persist()

    async def sweep(self) -> int:
        """Remove stale sessions and their queued instructions; save if any went."""
        removed = sweep_stale(self.state, self.config.sessions.cleanup_after_minutes)
        if removed:
            drop_orphaned(self.state)
            prune_queue(self.state)
            await self.persist()
        return removed

    async def _sweep_loop(self) -> None:
        shutdown = self._shutdown_event
        if shutdown is None:
            raise RuntimeError("Daemon.start() must run before the sweep loop")
        while not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=SWEEP_INTERVAL_SECONDS)
                break  # Shutdown requested
            except asyncio.TimeoutError:
                await self.sweep()


def session_summary(session: Session, now_ms: float | None = None) -> dict:
    """Redacted view of a session for API responses (no event history)."""
    now_ms = time.time() * 1000 if now_ms is None else now_ms
    return {
        "name": session.session_name,
        "project": session.project,
        "status": session.status,
        "last_activity": humanize_age(now_ms - session.last_event_time * 1000),
        "last_message": session.last_message[:200] or None,
        "tmux_pane": session.tmux_pane,
        "can_receive_input": session.can_receive_input,
        "pending_action": asdict(session.pending_action) if session.pending_action else None,
    }


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(
    config: Config,
    provider: CallProvider | None = None,
    deliver: Callable[[Session, str], DeliveryResult] | None = None,
    send_key: Callable[[Session, str], DeliveryResult] | None = None,
) -> FastAPI:
    """Build the daemon app.

    Args:
        config: Effective configuration.
        provider: Voice provider; defaults to a BolnaClient built from config.
        deliver: Text delivery function; defaults to tmux.deliver.
        send_key: Control-key function; defaults to tmux.send_key.

    Returns:
        FastAPI app. The Daemon instance is available as `app.state.daemon`.
    """
    daemon = Daemon(config, provider)
    deliver_fn = deliver or tmux.deliver
    send_key_fn = send_key or tmux.send_key

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("pingme daemon starting...")
        await daemon.start()
        logger.info(
            f"pingme daemon started ({len(daemon.state.sessions)} sessions restored)"
        )
        yield
        logger.info("pingme daemon shutting down...")
        await daemon.stop()
        logger.info("pingme daemon stopped")

    app = FastAPI(
        title="pingme daemon",
        description="Voice notifications and remote control for agent sessions",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.daemon = daemon

    async def require_token(authorization: str | None = Header(default=None)) -> None:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Unauthorized")
        if not verify_token(authorization[len("Bearer "):], config.daemon_token):
            raise HTTPException(status_code=401, detail="Unauthorized")

    auth = [Depends(require_token)]

    @app.post("/hooks/event", dependencies=auth)
    async def hook_event(body: HookEventRequest, background_tasks: BackgroundTasks):
        """Register the event, then call, batch, fall back or ignore."""
        if not body.event or not body.directory:
            raise HTTPException(status_code=400, detail="Missing required fields: event, directory")
        if body.tmux_pane and not is_valid_tmux_target(body.tmux_pane):
            raise HTTPException(status_code=400, detail="Invalid tmux_pane format")
        if body.tmux_session and not is_valid_tmux_target(body.tmux_session):
            raise HTTPException(status_code=400, detail="Invalid tmux_session format")

        event = HookEvent(
            event=body.event,
            directory=body.directory,
            project=body.project,
            tmux_session=body.tmux_session,
            tmux_pane=body.tmux_pane,
            timestamp=body.timestamp or int(time.time()),
            payload=body.payload,
        )
        logger.debug(f"Hook event received: {event.event} pane={event.tmux_pane}")

        state = daemon.state
        session = apply_event(state, event)

        if event.kind in (EventKind.STOPPED, EventKind.TASK_COMPLETED):
            await deliver_queued(state, session, deliver_fn)

        if state.active_call is not None:
            # Only surfaced through GET /status; nothing feeds it into the live call.
            state.active_call.events_during_call.append(
                EventRecord(
                    event=event.event,
                    timestamp=event.timestamp,
                    summary=f"{session.session_name}: {event.event}",
                )
            )
            logger.info(f"Event during active call: {event.event} ({session.session_name})")
        else:
            action = decide(event, state, config.policy)
            if isinstance(action, CallAction):
                daemon.calls.cancel_batch()
                background_tasks.add_task(daemon.calls.trigger_call, action.reason, action.priority)
            elif isinstance(action, BatchAction):
                daemon.calls.add_to_batch(action.event)
            elif isinstance(action, FallbackAction):
                logger.info(f"Fallback notification (no SMS channel configured): {action.message}")

        await daemon.persist()
        return {"received": True, "session_id": session.id}

    @app.get("/sessions", dependencies=auth)
    async def get_sessions(session_name: str | None = None):
        sessions = list_active(daemon.state)
        if session_name:
            needle = session_name.lower()
            sessions = [s for s in sessions if needle in s.session_name.lower()]
        summary = [session_summary(s) for s in sessions]
        return {"sessions": summary, "total": len(summary)}

    @app.post("/route", dependencies=auth)
    async def route(body: RouteRequest):
        """Send an instruction to a session, or queue it while the session works."""
        if not body.session_name or not body.instruction:
            raise HTTPException(status_code=400, detail="Missing session_name or instruction")
        instruction = body.instruction

        if not is_instruction_safe(instruction):
            logger.warning(f"Blocked unsafe instruction: {instruction[:80]}")
            return {"success": False, "error": "Instruction blocked by safety filter"}

        session = find_by_name(daemon.state, body.session_name)
        if session is None:
            return {"success": False, "error": f'No session found matching "{body.session_name}"'}

        if session.can_receive_input:
            result = await asyncio.to_thread(deliver_fn, session, instruction)
            if not result.success:
                return {"success": False, "error": result.error}
            return {"success": True, "message": f'Sent "{instruction}" to {session.session_name}'}

        if body.queue_if_busy is True or body.queue_if_busy == "true":
            if enqueue(daemon.state, session, instruction) is None:
                return {"success": False, "error": "Instruction queue is full. Try again later."}
            await daemon.persist()
            return {
                "success": True,
                "queued": True,
                "message": f'Session "{session.session_name}" is busy. '
                "Instruction queued for delivery when it next stops.",
            }

        return {
            "success": False,
            "error": f'Session "{session.session_name}" is currently working and not accepting input.',
            "suggestion": "Set queue_if_busy to true to queue the instruction.",
        }

    @app.post("/action", dependencies=auth)
    async def action(body: ActionRequest):
        if not body.session_name or not body.action:
            raise HTTPException(status_code=400, detail="Missing session_name or action")

        session = find_by_name(daemon.state, body.session_name)
        if session is None:
            return {"success": False, "error": f'Session "{body.session_name}" not found'}

        if body.action in ("approve", "deny"):
            if session.status != SessionStatus.PERMISSION.value:
                return {"success": False, "error": "Session is not waiting for permission"}
            key, verb = ("y", "Approved") if body.action == "approve" else ("n", "Denied")
            result = await asyncio.to_thread(deliver_fn, session, key)
            if not result.success:
                return {"success": False, "error": result.error}
            return {"success": True, "message": f"{verb} permission for {session.session_name}"}

        if body.action == "cancel":
            result = await asyncio.to_thread(send_key_fn, session, "C-c")
            if not result.success:
                return {"success": False, "error": "Failed to send cancel signal"}
            return {"success": True, "message": f"Sent cancel signal to {session.session_name}"}

        if body.action == "status":
            detail = session.to_dict()
            detail["recent_events"] = detail["recent_events"][-STATUS_EVENTS:]
            return {"success": True, "session": detail}

        return {"success": False, "error": f"Unknown action: {body.action}"}

    @app.post("/webhooks/bolna")
    async def bolna_webhook(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = {}
        await daemon.calls.handle_webhook(body if isinstance(body, dict) else {})
        return {"received": True}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/status", dependencies=auth)
    async def status():
        state = daemon.state
        return {
            "sessions": [session_summary(s) for s in list_active(state)],
            "active_call": asdict(state.active_call) if state.active_call else None,
            "recent_calls": [asdict(c) for c in state.call_history[-RECENT_CALLS:]],
            "uptime_seconds": daemon.uptime_seconds,
            "queued_instructions": undelivered_count(state),
        }

    @app.post("/sessions/{pane}/name", dependencies=auth)
    async def rename_session(pane: str, body: RenameRequest):
        if not body.name:
            raise HTTPException(status_code=400, detail="Missing name")
        session = find_by_pane(daemon.state, pane)
        if session is None:
            raise HTTPException(status_code=404, detail=f'No session found for pane "{pane}"')
        session.session_name = body.name
        await daemon.persist()
        logger.info(f"Renamed session at {pane} to {body.name}")
        return {"success": True, "session": session.to_dict()}

    @app.post("/call", dependencies=auth)
    async def call(body: CallRequest | None = None):
        reason = (body.reason if body else None) or "manual trigger"
        if daemon.calls.busy:
            return {"success": False, "error": "A call is already active"}
        if not await daemon.calls.trigger_call(reason, "high"):
            return {"success": False, "error": "Call could not be started"}
        return {"success": True, "message": "Call triggered"}

    return app


# =============================================================================
# Entry Point
# =============================================================================

def run_server(config: Config) -> None:
    """Run the daemon under uvicorn on the configured host and port.

    Logging must already be configured (see pingme.daemon.logs).
    """
    import uvicorn

    logger.info(f"Starting pingme daemon on {config.daemon.host}:{config.daemon.port}")
    uvicorn.run(
        create_app(config),
        host=config.daemon.host,
        port=config.daemon.port,
        log_level=config.daemon.log_level,
        access_log=False,
    )
