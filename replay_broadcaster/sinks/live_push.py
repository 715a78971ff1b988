"""Live-push sink: paced records over an open WebSocket.

WHY: A consumer that calls POST /rerun gets a WebSocket URL and connects
to it; the records must then flow over that single connection at the
original conversation's pace.

HOW: LivePushSink wraps a Starlette/FastAPI WebSocket. Each record is
sent as one JSON text frame carrying the {session_id, body} envelope;
the completion signal becomes the SESSION_COMPLETE text frame.

RULES:
- One connection, one session, one consumer
- Any send failure becomes ConsumerDisconnectedError (no retry; a
  disconnected consumer cannot be resumed)
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from starlette.websockets import WebSocket, WebSocketDisconnect

from replay_broadcaster.core.records import SESSION_COMPLETE, TranscriptRecord, envelope
from replay_broadcaster.server.sessions import SinkKind
from replay_broadcaster.sinks.base import DeliveryError, Sink

logger = logging.getLogger(__name__)


class ConsumerDisconnectedError(DeliveryError):
    """Raised when the live consumer went away mid-replay."""


class LivePushSink(Sink):
    """Sends records to one connected WebSocket consumer."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    @property
    def kind(self) -> SinkKind:
        return SinkKind.LIVE_PUSH

    async def deliver(self, session_id: str, record: Optional[TranscriptRecord]) -> None:
        if record is None:
            text = SESSION_COMPLETE
        else:
            text = json.dumps(envelope(session_id, record))

        try:
            await self._websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise ConsumerDisconnectedError(
                "Consumer for session {} disconnected: {}".format(session_id, exc)
            ) from exc

        if record is not None:
            logger.debug("Pushed to %s: %s - %s", session_id, record.speaker, record.sentence)
