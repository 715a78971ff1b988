"""Live transcription source adapter.

WHY: Besides replaying recordings, the system can relay a meeting that
is being transcribed right now. The live source speaks a WebSocket
protocol with an authentication handshake and a stream of typed JSON
frames; downstream consumers only want the transcription events.

HOW: BridgeAdapter connects with the ``websockets`` client, sends the
authenticate frame, and classifies every inbound frame by its "type"
discriminator. Transcription events are decoded into BridgeEvent objects
and put on an unbounded asyncio.Queue that the forwarder drains.

RULES:
- States: connecting → authenticating → streaming → closed
- Only "transcription.broadcast" frames (plus bare event objects of an
  unrecognized type) produce queued events
- A frame that fails to decode is logged and dropped; the stream goes on
- "auth.failed" closes the stream
- The queue is unbounded, so the read loop never waits on a slow consumer
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

import websockets
from websockets.exceptions import WebSocketException

from replay_broadcaster.bridge.events import BridgeDecodeError, BridgeEvent, FrameType
from replay_broadcaster.config import BRIDGE_URL

logger = logging.getLogger(__name__)


class BridgeState(str, enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass
class BridgeConfig:
    """Connection settings for one live transcript.

    RULES:
    - api_token is sent as "Bearer <token>" in the authenticate frame
    - transcript_id selects the live meeting on the source side
    - webhook_url receives every forwarded event
    """

    api_token: str
    transcript_id: str
    webhook_url: str
    url: str = field(default=BRIDGE_URL)


class BridgeAdapter:
    """Reads a live transcription stream into a queue of BridgeEvent objects."""

    def __init__(
        self,
        config: BridgeConfig,
        events: "Optional[asyncio.Queue[Optional[BridgeEvent]]]" = None,
        connect: Callable[..., Any] = websockets.connect,
    ) -> None:
        self.config = config
        self.events: "asyncio.Queue[Optional[BridgeEvent]]" = (
            events if events is not None else asyncio.Queue()
        )
        self.state = BridgeState.CONNECTING
        self.received = 0
        self._connect = connect

    def auth_message(self) -> str:
        return json.dumps({
            "type": "authenticate",
            "data": {
                "token": "Bearer {}".format(self.config.api_token),
                "transcriptId": self.config.transcript_id,
            },
        })

    async def run(self) -> None:
        """Connect, authenticate, and stream until the source closes.

        Connection errors end the run (logged); they are not raised, so a
        dead source only stops this bridge.
        """
        self.state = BridgeState.CONNECTING
        logger.info("Connecting bridge for transcript %s to %s",
                    self.config.transcript_id, self.config.url)
        try:
            async with self._connect(self.config.url) as ws:
                await ws.send(self.auth_message())
                self.state = BridgeState.AUTHENTICATING
                async for raw in ws:
                    if not self.handle_frame(raw):
                        break
        except (WebSocketException, OSError, asyncio.TimeoutError) as exc:
            logger.error("Bridge connection for %s failed: %s", self.config.transcript_id, exc)
        finally:
            self.state = BridgeState.CLOSED
            logger.info("Bridge for transcript %s closed", self.config.transcript_id)

    def handle_frame(self, raw: Union[str, bytes]) -> bool:
        """Classify one inbound frame and queue it if it is an event.

        Returns:
            False when the stream should be closed, True otherwise.
        """
        if isinstance(raw, bytes):
            logger.debug("Ignoring binary frame (%d bytes)", len(raw))
            return True

        try:
            frame = json.loads(raw)
        except ValueError:
            logger.warning("Received non-JSON frame: %.200s", raw)
            return True
        if not isinstance(frame, dict):
            logger.warning("Received unexpected frame: %.200s", raw)
            return True

        frame_type = frame.get("type")
        data = frame.get("data")

        if frame_type == FrameType.AUTH_SUCCESS:
            self.state = BridgeState.STREAMING
            logger.info("Bridge authentication successful: %s", data)
        elif frame_type == FrameType.AUTH_FAILED:
            logger.error("Bridge authentication failed: %s", data)
            return False
        elif frame_type == FrameType.CONNECTION_ESTABLISHED:
            logger.info("Bridge connection established")
        elif frame_type == FrameType.CONNECTION_ERROR:
            logger.error("Bridge connection error: %s", data)
        elif frame_type == FrameType.TRANSCRIPTION:
            try:
                self._enqueue(BridgeEvent.from_dict(data))
            except BridgeDecodeError as exc:
                logger.error("Failed to decode transcription event: %s (raw data: %.200s)",
                             exc, json.dumps(data))
        else:
            # Some sources send events without the broadcast wrapper.
            try:
                self._enqueue(BridgeEvent.from_dict(frame))
            except BridgeDecodeError:
                logger.debug("Received unknown message: %.200s", raw)

        return True

    def _enqueue(self, event: BridgeEvent) -> None:
        self.received += 1
        logger.debug("Received transcription event: %s - %s", event.speaker, event.text)
        self.events.put_nowait(event)
