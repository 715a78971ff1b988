"""Transcript record dataclasses and the replay wire envelope.

WHY: Every layer (loader, registry, scheduler, sinks, API) passes the
same three-field records around. A frozen dataclass makes the records
safe to share between concurrent replay tasks without copying.

HOW: TranscriptRecord is the atomic unit. TranscriptFile groups the
records of one CSV file for the listing endpoint. envelope() builds the
per-record payload both sinks send.

RULES:
- time_code is kept as the original text; it is parsed on use only
- Records are immutable once loaded
- The envelope shape is {session_id, body: {time_code, speaker, sentence}}
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

SESSION_COMPLETE = "SESSION_COMPLETE"
"""Text frame sent to a live consumer after the last record."""

SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
"""Text frame sent to a live consumer whose session id is unknown."""


@dataclass(frozen=True)
class TranscriptRecord:
    """One line of a recorded conversation.

    RULES:
    - time_code: elapsed time since the start, "H:MM:SS", "MM:SS" or "S"
    - speaker: display name as written in the transcript
    - sentence: the spoken text
    """

    time_code: str
    speaker: str
    sentence: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TranscriptRecord:
        return cls(
            time_code=str(data["time_code"]),
            speaker=str(data["speaker"]),
            sentence=str(data["sentence"]),
        )


@dataclass
class TranscriptFile:
    """A transcript file on disk and its parsed records."""

    filename: str
    records: List[TranscriptRecord] = field(default_factory=list)


def envelope(session_id: str, record: TranscriptRecord) -> Dict[str, Any]:
    """Wrap a record in the per-record delivery payload."""
    return {"session_id": session_id, "body": record.to_dict()}
