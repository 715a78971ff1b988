"""In-memory session registry with atomic claim and TTL cleanup.

WHY: HTTP handlers create replay sessions, WebSocket handlers and webhook
tasks replay them, and the status endpoints read them, all concurrently.
The registry is the single source of truth and the only place where
concurrent sessions could race, so every access goes through one lock.

HOW: Three components work together:
  SessionStatus: enum of valid session states
  Session: dataclass holding a transcript's records and cursor
  SessionStore: lock-guarded dict with create/get/claim/advance/remove,
    plus TTL cleanup of sessions nobody ever claimed

RULES:
- All store operations acquire self._lock and never await while holding it
- get() and claim() return snapshots (copies), never the live entry
- The cursor only moves forward and never exceeds len(records)
- remove() is idempotent: a retired id stays retired
- A session is claimed for replay at most once (pending → replaying)
- Session IDs are UUID4 hex strings unless the caller supplies one
"""

from __future__ import annotations

import copy
import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from replay_broadcaster.config import MAX_SESSIONS, SESSION_TTL_SECONDS
from replay_broadcaster.core.records import TranscriptRecord

logger = logging.getLogger(__name__)


class SessionExistsError(ValueError):
    """Raised when a caller-supplied session id is already live."""


class SessionLimitError(ValueError):
    """Raised when the registry already holds max_sessions sessions."""


class SinkKind(str, enum.Enum):
    """Delivery target a session was created for."""

    LIVE_PUSH = "live_push"
    WEBHOOK = "webhook"


class SessionStatus(str, enum.Enum):
    """Valid states for a registered session.

    RULES:
    - pending: created, waiting for a consumer (live push) or a task
    - replaying: claimed by exactly one scheduler
    - There is no terminal state; finished sessions are removed
    """

    PENDING = "pending"
    REPLAYING = "replaying"


@dataclass
class Session:
    """One in-flight replay of a transcript.

    RULES:
    - id: unique for the lifetime of the process
    - records: immutable tuple, captured at creation
    - cursor: number of records delivered so far
    - sink_kind: which sink variant will deliver the records
    """

    id: str
    records: Tuple[TranscriptRecord, ...]
    sink_kind: SinkKind
    filename: str = ""
    cursor: int = 0
    status: SessionStatus = SessionStatus.PENDING
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None

    @property
    def total(self) -> int:
        return len(self.records)

    @property
    def remaining(self) -> int:
        return self.total - self.cursor


class SessionStore:
    """Lock-guarded in-memory registry of replay sessions.

    WHY: Many sessions progress in parallel, each in its own task, while
    API handlers look them up. A single lock held only for point
    operations keeps each operation atomic without one slow session
    starving the others.

    HOW: Sessions live in a plain dict keyed by id. Readers receive
    shallow copies (records are immutable, so sharing them is safe).
    The owning scheduler moves the cursor through advance().

    RULES:
    - get() returns None for unknown ids (no exceptions)
    - claim() returns None if the session is unknown or already claimed
    - cleanup_expired() only removes sessions still pending after the TTL
    """

    def __init__(
        self,
        ttl_seconds: int = SESSION_TTL_SECONDS,
        max_sessions: int = MAX_SESSIONS,
    ) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions

    def create_session(
        self,
        records: Sequence[TranscriptRecord],
        sink_kind: SinkKind,
        filename: str = "",
        session_id: Optional[str] = None,
    ) -> Session:
        """Register a new pending session and return a snapshot of it.

        Raises:
            SessionExistsError: session_id is already registered.
            SessionLimitError: the registry is full.
        """
        session = Session(
            id=session_id or uuid.uuid4().hex,
            records=tuple(records),
            sink_kind=SinkKind(sink_kind),
            filename=filename,
            created_at=time.time(),
        )
        self.create(session)
        return copy.copy(session)

    def create(self, session: Session) -> None:
        with self._lock:
            if session.id in self._sessions:
                raise SessionExistsError("Session already exists: {}".format(session.id))
            if len(self._sessions) >= self.max_sessions:
                raise SessionLimitError(
                    "Maximum number of concurrent sessions ({}) reached".format(
                        self.max_sessions
                    )
                )
            self._sessions[session.id] = copy.copy(session)

        logger.info(
            "Created %s session %s (%d records from %s)",
            session.sink_kind.value, session.id, len(session.records),
            session.filename or "<inline>",
        )

    def get(self, session_id: str) -> Optional[Session]:
        """Return a snapshot of the session, or None if not registered."""
        with self._lock:
            session = self._sessions.get(session_id)
            return copy.copy(session) if session is not None else None

    def list_sessions(self) -> List[Session]:
        """Return snapshots of all sessions, oldest first."""
        with self._lock:
            sessions = [copy.copy(s) for s in self._sessions.values()]
        return sorted(sessions, key=lambda s: s.created_at)

    def claim(self, session_id: str) -> Optional[Session]:
        """Atomically mark a pending session as replaying.

        Returns:
            A snapshot of the claimed session, or None when the session
            is unknown or another scheduler already owns it.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.status != SessionStatus.PENDING:
                return None
            session.status = SessionStatus.REPLAYING
            session.started_at = time.time()
            return copy.copy(session)

    def advance(self, session_id: str) -> Optional[int]:
        """Move the cursor forward by one record.

        Returns:
            The new cursor, or None if the session was already removed.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            session.cursor = min(session.cursor + 1, len(session.records))
            return session.cursor

    def remove(self, session_id: str) -> bool:
        """Retire a session.

        Returns:
            True if this call removed it, False if it was already gone.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)

        if session is None:
            return False

        logger.info(
            "Retired session %s at %d/%d records",
            session_id, session.cursor, len(session.records),
        )
        return True

    def cleanup_expired(self) -> int:
        """Remove pending sessions nobody claimed within the TTL.

        A live-push session whose consumer never connects would otherwise
        stay registered forever.

        Returns:
            The number of sessions removed.
        """
        now = time.time()
        expired: List[Session] = []

        with self._lock:
            for session_id, session in list(self._sessions.items()):
                if session.status != SessionStatus.PENDING:
                    continue
                if now - session.created_at > self._ttl_seconds:
                    expired.append(self._sessions.pop(session_id))

        for session in expired:
            logger.info(
                "Expired unclaimed session %s (created %.0fs ago)",
                session.id, now - session.created_at,
            )

        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions
