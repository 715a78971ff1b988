"""Replay scheduler: paced delivery of one session through a sink.

WHY: Recorded transcripts embed absolute elapsed time. To feel live, each
record must arrive after the same delay it had in the original
conversation. This module rebuilds that cadence and drives one session
from its first record to retirement.

HOW: pacing_waits() turns time codes into per-record waits. replay_session()
claims the session, then for each record waits, delivers through the sink,
and advances the registry cursor. After the last record it delivers the
completion signal. The session is removed in a finally block, so every
exit path (success, sink failure, cancellation) retires it exactly once.

RULES:
- Offsets are cumulative from the session start, not deltas
- wait = max(current - last, 0); negative deltas (out-of-order or
  duplicate timestamps) clamp to zero and never reorder delivery
- Waits are cooperative (asyncio.sleep); other sessions keep running
- The registry lock is never held across a wait or a delivery
- Sink failures propagate to the caller after the session is retired
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Sequence

from replay_broadcaster.core.records import TranscriptRecord
from replay_broadcaster.core.timecode import parse_timecode
from replay_broadcaster.server.sessions import SessionStore
from replay_broadcaster.sinks.base import Sink

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class ReplayResult:
    """Outcome of a replay.

    RULES:
    - found is False when the session was unknown or already claimed;
      nothing was delivered in that case
    - completed is True only when every record and the completion
      signal were delivered
    """

    session_id: str
    found: bool
    delivered: int = 0
    total: int = 0
    completed: bool = False


def pacing_waits(records: Sequence[TranscriptRecord]) -> List[int]:
    """Return the number of seconds to wait before each record.

    >>> pacing_waits([TranscriptRecord(t, "", "") for t in ("0", "5", "5", "12")])
    [0, 5, 0, 7]
    """
    waits = []
    last_offset = 0
    for record in records:
        current = parse_timecode(record.time_code)
        waits.append(max(current - last_offset, 0))
        last_offset = current
    return waits


async def replay_session(
    session_id: str,
    store: SessionStore,
    sink: Sink,
    sleep: SleepFunc = asyncio.sleep,
    speed: float = 1.0,
) -> ReplayResult:
    """Claim a session and deliver its records through a sink at the original pace.

    Args:
        session_id: Id of a pending session in the store.
        store: The shared session registry.
        sink: Delivery target for the records.
        sleep: Coroutine used for pacing waits (injectable for tests).
        speed: Playback speed multiplier; 2.0 halves every wait.

    Returns:
        A ReplayResult. found is False when the session could not be
        claimed; the caller decides how to report that.

    Raises:
        DeliveryError: the sink failed; the session is already retired.
    """
    if speed <= 0:
        raise ValueError("speed must be positive, got {}".format(speed))

    session = store.claim(session_id)
    if session is None:
        logger.warning("Session not found or already replaying: %s", session_id)
        return ReplayResult(session_id=session_id, found=False)

    result = ReplayResult(session_id=session_id, found=True, total=session.total)
    logger.info(
        "Starting %s replay of session %s (%d records)",
        sink.kind.value, session_id, session.total,
    )

    try:
        for record, wait in zip(session.records, pacing_waits(session.records)):
            await sleep(wait / speed)
            await sink.deliver(session_id, record)
            store.advance(session_id)
            result.delivered += 1

        await sink.deliver(session_id, None)
        result.completed = True
        logger.info("Session %s completed (%d records)", session_id, result.delivered)
    except Exception:
        logger.warning(
            "Session %s aborted after %d/%d records",
            session_id, result.delivered, result.total,
        )
        raise
    finally:
        store.remove(session_id)

    return result
