"""Abstract delivery sink.

WHY: A replay can go to a consumer holding a live WebSocket or to a
webhook endpoint. The pacing algorithm should not care which; it is
written once against this interface.

HOW: Sink is an ABC with a single ``deliver()`` coroutine. The scheduler
calls it once per record, then once more with ``record=None`` to signal
that the session is complete. Each variant decides how to encode the
record and the completion signal for its transport.

RULES:
- deliver() raises (a DeliveryError subclass) when the record could not
  be delivered; the scheduler aborts the session on any exception
- deliver(session_id, None) is the completion signal, sent exactly once
  after the last record and only if every record was delivered

To add a new sink:
1. Create a new module in sinks/
2. Subclass Sink and implement ``kind`` and ``deliver()``
3. Export it from sinks/__init__.py
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from replay_broadcaster.core.records import TranscriptRecord
from replay_broadcaster.server.sessions import SinkKind


class DeliveryError(Exception):
    """Raised by a sink when a record could not be delivered."""


class Sink(ABC):
    """Delivery target for paced transcript records."""

    @property
    @abstractmethod
    def kind(self) -> SinkKind:
        """Which sink variant this is."""

    @abstractmethod
    async def deliver(self, session_id: str, record: Optional[TranscriptRecord]) -> None:
        """Deliver one record, or the completion signal when record is None.

        Args:
            session_id: The session the record belongs to.
            record: The next record in order, or None once all records
                    have been delivered.

        Raises:
            DeliveryError: the record could not be delivered.
        """
