"""Webhook sink: paced records POSTed to a fixed HTTP endpoint.

WHY: Some consumers cannot hold a WebSocket open; they expose an HTTP
endpoint instead. The replay is pushed to them actively, without waiting
for anyone to connect.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. WebhookSink is an
async context manager. Enter it to open the connection pool, exit to
close it. Each record is POSTed as a JSON {session_id, body} envelope;
the completion signal becomes a {status: "complete"} POST.

RULES:
- Always use the async context manager (async with WebhookSink(url) as sink:)
- Fail fast: a transport error or a 4xx/5xx response raises
  WebhookDeliveryError and nothing further is sent for the session
- Failure of the completion POST is logged only; every record already
  arrived, so the broadcast still counts as complete
- Every POST uses the same fixed timeout (30s by default)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from replay_broadcaster.config import WEBHOOK_TIMEOUT_S
from replay_broadcaster.core.records import TranscriptRecord, envelope
from replay_broadcaster.server.sessions import SinkKind
from replay_broadcaster.sinks.base import DeliveryError, Sink

logger = logging.getLogger(__name__)


class WebhookDeliveryError(DeliveryError):
    """Raised when the webhook endpoint rejected or never received a record.

    RULES:
    - status_code is the HTTP status, or None for transport failures
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(message)


def completion_payload(session_id: str) -> Dict[str, Any]:
    return {
        "status": "complete",
        "message": "Broadcast completed",
        "session_id": session_id,
    }


class WebhookSink(Sink):
    """POSTs each paced record to a webhook URL.

    RULES:
    - Use as: async with WebhookSink(url) as sink: ...
    - transport is for tests (httpx.MockTransport); production uses the
      default network transport
    """

    def __init__(
        self,
        url: str,
        timeout: float = WEBHOOK_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.sent = 0

    @property
    def kind(self) -> SinkKind:
        return SinkKind.WEBHOOK

    async def __aenter__(self) -> WebhookSink:
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
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "WebhookSink must be used as an async context manager: "
                "async with WebhookSink(url) as sink: ..."
            )
        return self._client

    async def deliver(self, session_id: str, record: Optional[TranscriptRecord]) -> None:
        if record is None:
            await self._send_completion(session_id)
            return

        client = self._ensure_client()
        try:
            resp = await client.post(self.url, json=envelope(session_id, record))
        except httpx.HTTPError as exc:
            logger.error(
                "Webhook POST failed for session %s (%s - %s): %s",
                session_id, record.speaker, record.sentence, exc,
            )
            raise WebhookDeliveryError(
                "Webhook connection failed: {}".format(exc)
            ) from exc

        self.sent += 1

        if resp.is_client_error or resp.is_server_error:
            logger.error(
                "Webhook returned status %d for session %s, stopping broadcast",
                resp.status_code, session_id,
            )
            raise WebhookDeliveryError(
                "Webhook connection failed with status: {}".format(resp.status_code),
                status_code=resp.status_code,
            )

        logger.info(
            "Sent to webhook for session %s: %s - %s",
            session_id, record.speaker, record.sentence,
        )

    async def _send_completion(self, session_id: str) -> None:
        client = self._ensure_client()
        try:
            resp = await client.post(self.url, json=completion_payload(session_id))
        except httpx.HTTPError as exc:
            logger.warning("Failed to send completion message for %s: %s", session_id, exc)
            return

        if resp.is_success:
            logger.info("Sent completion message for session %s", session_id)
        else:
            logger.warning(
                "Completion message for %s returned status %d",
                session_id, resp.status_code,
            )
