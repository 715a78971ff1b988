"""Registry of running live bridges.

WHY: The API can start a bridge per live transcript and must be able to
list and stop them, and to stop all of them on shutdown.

HOW: Each bridge is one asyncio task that runs a BridgeAdapter (reader)
and a WebhookForwarder (drainer) side by side. When the source closes,
the reader pushes the None sentinel so the forwarder sends what is left
and stops; the bridge then removes itself. stop_bridge() cancels the task.

RULES:
- Bridge IDs are UUID4 hex strings
- Stopping a bridge never affects another bridge or any replay session
- stop_bridge() returns False for unknown ids (no exceptions)
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from replay_broadcaster.bridge.adapter import BridgeAdapter, BridgeConfig, BridgeState
from replay_broadcaster.bridge.forwarder import WebhookForwarder

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[BridgeConfig], BridgeAdapter]
ForwarderFactory = Callable[[str], WebhookForwarder]


@dataclass
class BridgeInfo:
    id: str
    transcript_id: str
    webhook_url: str
    state: BridgeState
    received: int
    forwarded: int
    failed: int


@dataclass
class _BridgeHandle:
    id: str
    adapter: BridgeAdapter
    forwarder: WebhookForwarder
    task: Optional["asyncio.Task[None]"] = None


class BridgeManager:
    """Starts, lists and stops bridges on the running event loop."""

    def __init__(
        self,
        adapter_factory: AdapterFactory = BridgeAdapter,
        forwarder_factory: ForwarderFactory = WebhookForwarder,
    ) -> None:
        self._bridges: Dict[str, _BridgeHandle] = {}
        self._adapter_factory = adapter_factory
        self._forwarder_factory = forwarder_factory

    def start_bridge(self, config: BridgeConfig) -> str:
        """Start a bridge for one live transcript and return its id.

        Must be called from a coroutine (needs the running loop).
        """
        bridge_id = uuid.uuid4().hex
        handle = _BridgeHandle(
            id=bridge_id,
            adapter=self._adapter_factory(config),
            forwarder=self._forwarder_factory(config.webhook_url),
        )
        self._bridges[bridge_id] = handle
        handle.task = asyncio.create_task(self._run(handle))
        logger.info("Started bridge %s for transcript %s", bridge_id, config.transcript_id)
        return bridge_id

    async def _run(self, handle: _BridgeHandle) -> None:
        try:
            await run_bridge(handle.adapter, handle.forwarder)
        except asyncio.CancelledError:
            logger.info("Bridge %s stopped", handle.id)
            raise
        except Exception:
            logger.exception("Bridge %s failed", handle.id)
        finally:
            self._bridges.pop(handle.id, None)

    def get_bridge(self, bridge_id: str) -> Optional[BridgeInfo]:
        handle = self._bridges.get(bridge_id)
        return self._info(handle) if handle is not None else None

    def list_bridges(self) -> List[BridgeInfo]:
        return [self._info(h) for h in self._bridges.values()]

    async def stop_bridge(self, bridge_id: str) -> bool:
        """Cancel a running bridge. Returns False if it is not running."""
        handle = self._bridges.pop(bridge_id, None)
        if handle is None:
            return False
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()
            try:
                await handle.task
            except asyncio.CancelledError:
                pass
        return True

    async def stop_all(self) -> int:
        stopped = 0
        for bridge_id in list(self._bridges):
            if await self.stop_bridge(bridge_id):
                stopped += 1
        return stopped

    @staticmethod
    def _info(handle: _BridgeHandle) -> BridgeInfo:
        return BridgeInfo(
            id=handle.id,
            transcript_id=handle.adapter.config.transcript_id,
            webhook_url=handle.forwarder.webhook_url,
            state=handle.adapter.state,
            received=handle.adapter.received,
            forwarded=handle.forwarder.forwarded,
            failed=handle.forwarder.failed,
        )


async def run_bridge(adapter: BridgeAdapter, forwarder: WebhookForwarder) -> int:
    """Run one adapter and its forwarder until the live source closes.

    After the source closes, events still queued are forwarded before
    this returns. Cancelling, or any error from the adapter, stops the
    forwarder before its HTTP client is closed.

    Returns:
        The number of events the webhook accepted.
    """
    async with forwarder:
        drain_task = asyncio.create_task(forwarder.drain(adapter.events))
        try:
            await adapter.run()
            adapter.events.put_nowait(None)
            return await drain_task
        finally:
            if not drain_task.done():
                drain_task.cancel()
                try:
                    await drain_task
                except asyncio.CancelledError:
                    pass
