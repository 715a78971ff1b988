"""Live transcription bridge: relays a live source to a webhook.

WHY: A meeting being transcribed right now should reach the same
downstream webhook as a replayed recording, without pacing.

HOW: BridgeAdapter reads and decodes the live WebSocket stream into an
unbounded queue; WebhookForwarder drains the queue; BridgeManager runs
and tracks adapter/forwarder pairs.

RULES:
- The adapter never blocks on the forwarder (unbounded queue)
- A failed forward is logged and skipped, never retried
"""

from replay_broadcaster.bridge.adapter import BridgeAdapter, BridgeConfig, BridgeState
from replay_broadcaster.bridge.events import BridgeDecodeError, BridgeEvent, FrameType
from replay_broadcaster.bridge.forwarder import WebhookForwarder
from replay_broadcaster.bridge.manager import BridgeInfo, BridgeManager, run_bridge

__all__ = [
    "BridgeAdapter",
    "BridgeConfig",
    "BridgeDecodeError",
    "BridgeEvent",
    "BridgeInfo",
    "BridgeManager",
    "BridgeState",
    "FrameType",
    "WebhookForwarder",
    "run_bridge",
]
