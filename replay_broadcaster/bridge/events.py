"""Live transcription event dataclass and frame decoding.

WHY: The live source streams JSON frames. Only transcription events are
forwarded, and only if they carry the fields downstream consumers rely
on. A typed dataclass makes the forwarded shape explicit and catches
malformed payloads before they reach a webhook.

HOW: BridgeEvent.from_dict() validates and parses one event object;
to_dict() produces the wire form again. FrameType enumerates the "type"
discriminators the source sends.

RULES:
- "type" → kind, "transcriptId" → transcript_id on the wire
- kind, timestamp, speaker and text are required; timestamp is an integer
- confidence (number) and is_final (bool) are optional
- Any violation raises BridgeDecodeError (never KeyError/TypeError)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class BridgeDecodeError(ValueError):
    """Raised when a frame payload is not a valid transcription event."""


class FrameType(str, enum.Enum):
    """Inbound frame discriminators sent by the live source."""

    AUTH_SUCCESS = "auth.success"
    AUTH_FAILED = "auth.failed"
    CONNECTION_ESTABLISHED = "connection.established"
    CONNECTION_ERROR = "connection.error"
    TRANSCRIPTION = "transcription.broadcast"


def _require(data: Dict[str, Any], key: str, kind: type) -> Any:
    if key not in data:
        raise BridgeDecodeError("missing field '{}'".format(key))
    value = data[key]
    if kind is int and isinstance(value, bool):
        raise BridgeDecodeError("field '{}' must be an integer".format(key))
    if not isinstance(value, kind):
        raise BridgeDecodeError(
            "field '{}' must be {}, got {}".format(key, kind.__name__, type(value).__name__)
        )
    return value


@dataclass
class BridgeEvent:
    """One transcription event received from the live source.

    RULES:
    - kind: source event type, e.g. "transcription"
    - timestamp: source timestamp (integer, source-defined epoch)
    - confidence: 0.0-1.0 when the source provides it, else None
    - is_final: False for interim hypotheses, None when unknown
    """

    kind: str
    timestamp: int
    speaker: str
    text: str
    confidence: Optional[float] = None
    is_final: Optional[bool] = None
    transcript_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> BridgeEvent:
        """Parse a BridgeEvent from a decoded JSON object.

        Raises:
            BridgeDecodeError: data is not an object or a field is invalid.
        """
        if not isinstance(data, dict):
            raise BridgeDecodeError("event payload must be an object")

        confidence = data.get("confidence")
        if confidence is not None:
            if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
                raise BridgeDecodeError("field 'confidence' must be a number")
            confidence = float(confidence)

        is_final = data.get("is_final")
        if is_final is not None and not isinstance(is_final, bool):
            raise BridgeDecodeError("field 'is_final' must be a boolean")

        transcript_id = data.get("transcriptId")
        if transcript_id is not None:
            transcript_id = str(transcript_id)

        return cls(
            kind=_require(data, "type", str),
            timestamp=_require(data, "timestamp", int),
            speaker=_require(data, "speaker", str),
            text=_require(data, "text", str),
            confidence=confidence,
            is_final=is_final,
            transcript_id=transcript_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.kind,
            "timestamp": self.timestamp,
            "speaker": self.speaker,
            "text": self.text,
            "confidence": self.confidence,
            "is_final": self.is_final,
        }
        if self.transcript_id is not None:
            data["transcriptId"] = self.transcript_id
        return data
