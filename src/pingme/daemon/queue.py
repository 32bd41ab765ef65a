"""Instruction queue: remote-control text waiting for a busy session to stop."""

import asyncio
import logging
import time
import uuid
from typing import Callable

from pingme.core.security import is_instruction_safe
from pingme.core.session import MAX_QUEUE_DEPTH, DaemonState, QueuedInstruction, Session
from pingme.core.tmux import DeliveryResult

logger = logging.getLogger(__name__)

Deliver = Callable[[Session, str], DeliveryResult]


def prune_queue(state: DaemonState) -> None:
    """Drop delivered entries and keep at most MAX_QUEUE_DEPTH, newest last."""
    state.instruction_queue = [q for q in state.instruction_queue if not q.delivered][
        -MAX_QUEUE_DEPTH:
    ]


def undelivered_count(state: DaemonState) -> int:
    return sum(1 for q in state.instruction_queue if not q.delivered)


def enqueue(state: DaemonState, session: Session, instruction: str) -> QueuedInstruction | None:
    """Queue an instruction for delivery on the session's next stop.

    Returns:
        The queued entry, or None if the queue is full.
    """
    prune_queue(state)
    if len(state.instruction_queue) >= MAX_QUEUE_DEPTH:
        logger.warning(f"Instruction queue full, rejecting instruction for {session.session_name}")
        return None

    queued = QueuedInstruction(
        id=str(uuid.uuid4()),
        target_session_id=session.id,
        instruction=instruction,
        queued_at=int(time.time() * 1000),
    )
    state.instruction_queue.append(queued)
    logger.info(f"Queued instruction for {session.session_name}: {instruction[:80]}")
    return queued


async def deliver_queued(state: DaemonState, session: Session, deliver: Deliver) -> int:
    """Deliver queued instructions for a session that just stopped.

    Safety is checked again here; a blocked entry is marked delivered so it
    is pruned rather than retried. Failed deliveries stay queued. `deliver`
    runs in a worker thread; queue entries are only updated on the loop.

    Args:
        state: Daemon state holding the queue.
        session: The session that became ready for input.
        deliver: Delivery function (tmux.deliver in production).

    Returns:
        Number of entries handled (delivered or dropped as unsafe).
    """
    pending = [
        q
        for q in state.instruction_queue
        if q.target_session_id == session.id and not q.delivered and q.deliver_on == "next_stop"
    ]

    handled = 0
    for queued in pending:
        if queued.delivered:
            continue
        if not is_instruction_safe(queued.instruction):
            logger.warning(
                f"Blocked queued instruction at delivery for {session.session_name}: "
                f"{queued.instruction[:80]}"
            )
        else:
            result = await asyncio.to_thread(deliver, session, queued.instruction)
            if not result.success:
                logger.warning(
                    f"Failed to deliver queued instruction to {session.session_name}: "
                    f"{result.error}"
                )
                continue
            logger.info(
                f"Delivered queued instruction to {session.session_name}: {queued.instruction[:80]}"
            )
        queued.delivered = True
        queued.delivered_at = int(time.time() * 1000)
        handled += 1
    return handled


def drop_orphaned(state: DaemonState) -> int:
    """Remove queue entries whose target session no longer exists.

    Returns:
        Number of entries removed.
    """
    before = len(state.instruction_queue)
    state.instruction_queue = [
        q for q in state.instruction_queue if q.target_session_id in state.sessions
    ]
    removed = before - len(state.instruction_queue)
    if removed:
        logger.info(f"Dropped {removed} queued instruction(s) for removed sessions")
    return removed
