"""Delivery sinks: where paced transcript records go.

WHY: The scheduler, the API and the CLI need one place to find the sink
variants. Each sink implements the same single deliver() operation, so
adding a transport is one new module plus one export here.

RULES:
- Sinks raise DeliveryError subclasses; they never swallow a record failure
- Importing this package must not open any connection
"""

from replay_broadcaster.sinks.base import DeliveryError, Sink
from replay_broadcaster.sinks.live_push import ConsumerDisconnectedError, LivePushSink
from replay_broadcaster.sinks.webhook import WebhookDeliveryError, WebhookSink

__all__ = [
    "ConsumerDisconnectedError",
    "DeliveryError",
    "LivePushSink",
    "Sink",
    "WebhookDeliveryError",
    "WebhookSink",
]
