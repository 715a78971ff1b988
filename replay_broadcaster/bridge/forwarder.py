"""Forwards live bridge events to a webhook.

WHY: Live events cannot be replayed. If one POST fails, the events after
it are still worth delivering, so unlike the webhook sink this forwarder
logs failures and keeps draining.

HOW: WebhookForwarder wraps an httpx.AsyncClient (async context manager,
same as WebhookSink). drain() pulls events off the bridge queue until it
sees the None sentinel, POSTing each one tagged with the source marker
and the receipt time.

RULES:
- No pacing: events already arrive in real time
- Payload: {source: "bridge", event: {...}, timestamp: <unix seconds>}
- forward() never raises for transport errors or non-2xx responses
- None on the queue stops drain() after everything before it was sent
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import httpx

from replay_broadcaster.bridge.events import BridgeEvent
from replay_broadcaster.config import BRIDGE_SOURCE_TAG, WEBHOOK_TIMEOUT_S

logger = logging.getLogger(__name__)


class WebhookForwarder:
    """POSTs each bridge event to a webhook, best effort."""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = WEBHOOK_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.webhook_url = webhook_url
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.forwarded = 0
        self.failed = 0

    async def __aenter__(self) -> WebhookForwarder:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "WebhookForwarder must be used as an async context manager: "
                "async with WebhookForwarder(url) as forwarder: ..."
            )
        return self._client

    @staticmethod
    def payload(event: BridgeEvent) -> Dict[str, Any]:
        return {
            "source": BRIDGE_SOURCE_TAG,
            "event": event.to_dict(),
            "timestamp": int(time.time()),
        }

    async def forward(self, event: BridgeEvent) -> bool:
        """POST one event. Returns True when the webhook accepted it."""
        client = self._ensure_client()
        try:
            resp = await client.post(self.webhook_url, json=self.payload(event))
        except httpx.HTTPError as exc:
            self.failed += 1
            logger.error("Failed to forward event to webhook: %s", exc)
            return False

        if not resp.is_success:
            self.failed += 1
            logger.error("Webhook responded with status %d: %.500s",
                         resp.status_code, resp.text or "No response body")
            return False

        self.forwarded += 1
        logger.info("Forwarded event to webhook: %s - %s", event.speaker, event.text)
        return True

    async def drain(self, events: "asyncio.Queue[Optional[BridgeEvent]]") -> int:
        """Forward queued events until the None sentinel arrives.

        Returns:
            The number of events the webhook accepted.
        """
        logger.info("Starting webhook forwarder to %s", self.webhook_url)
        while True:
            event = await events.get()
            try:
                if event is None:
                    break
                await self.forward(event)
            finally:
                events.task_done()
        logger.info("Webhook forwarder stopped (%d forwarded, %d failed)",
                    self.forwarded, self.failed)
        return self.forwarded
