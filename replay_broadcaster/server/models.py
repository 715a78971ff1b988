"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation. Pydantic
models enforce field types at runtime and generate the JSON Schema shown
in the /docs UI.

HOW: Each endpoint pair (request + response) has its own model. All
models include Field descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Response models never expose internal objects (stores, tasks, sockets)
- Optional from typing, no PEP 604 unions
- SinkKind and SessionStatus are imported from server.sessions
  (single source of truth)
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from replay_broadcaster.server.sessions import SessionStatus, SinkKind


# ---------------------------------------------------------------------------
# Transcripts
# ---------------------------------------------------------------------------


class TranscriptRecordModel(BaseModel):
    """One transcript line as exposed over HTTP."""

    time_code: str = Field(description="Elapsed time since the start (H:MM:SS, MM:SS or S).")
    speaker: str = Field(description="Speaker name.")
    sentence: str = Field(description="Transcript sentence.")


class TranscriptFileResponse(BaseModel):
    """A transcript file available for replay."""

    filename: str = Field(description="Filename of the transcript (use it in /rerun and /broadcast).")
    records: List[TranscriptRecordModel] = Field(description="Records in replay order.")


# ---------------------------------------------------------------------------
# Replay requests
# ---------------------------------------------------------------------------


class RerunRequest(BaseModel):
    """Start a live-push replay.

    RULES:
    - session_id is optional; a UUID is generated when omitted
    """

    filename: str = Field(description="Filename of the transcript to replay.")
    session_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Session identifier to use. Generated when omitted.",
    )


class WebsocketInfo(BaseModel):
    """Where a live-push consumer should connect."""

    websocket_url: str = Field(description="WebSocket URL for the replay connection.")
    session_id: str = Field(description="Session ID for the replay.")
    port: int = Field(description="Port number of the WebSocket endpoint.")


class BroadcastRequest(BaseModel):
    """Start a webhook replay.

    RULES:
    - webhook_url falls back to the WEBHOOK_URL setting
    - wait=true holds the request open until the broadcast finishes
    """

    filename: str = Field(description="Filename of the transcript to replay.")
    session_id: Optional[str] = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Session identifier to use. Generated when omitted.",
    )
    webhook_url: Optional[str] = Field(
        default=None,
        description="Endpoint that receives one POST per record. Defaults to WEBHOOK_URL.",
    )
    wait: bool = Field(
        default=False,
        description="Wait for the broadcast to finish and report its outcome.",
    )
    speed: float = Field(
        default=1.0,
        gt=0,
        description="Playback speed multiplier (2.0 replays twice as fast).",
    )


class BroadcastResponse(BaseModel):
    """Acknowledgment of a webhook replay."""

    session_id: str = Field(description="Session ID of the broadcast.")
    status: str = Field(description="'accepted', 'completed' or 'failed'.")
    delivered: Optional[int] = Field(
        default=None,
        description="Records delivered (only when wait=true).",
    )
    total: int = Field(description="Number of records in the transcript.")
    error: Optional[str] = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionResponse(BaseModel):
    """Snapshot of a registered session."""

    id: str = Field(description="Session identifier.")
    filename: str = Field(description="Transcript being replayed.")
    sink_kind: SinkKind = Field(description="Delivery target of the session.")
    status: SessionStatus = Field(description="'pending' until a replay claims it, then 'replaying'.")
    cursor: int = Field(description="Records delivered so far.")
    total: int = Field(description="Total records in the session.")
    created_at: float = Field(description="Creation timestamp (Unix epoch seconds).")
    started_at: Optional[float] = Field(
        default=None,
        description="Replay start timestamp, once claimed.",
    )


# ---------------------------------------------------------------------------
# Bridges
# ---------------------------------------------------------------------------


class BridgeRequest(BaseModel):
    """Start relaying a live transcript to a webhook."""

    transcript_id: str = Field(min_length=1, description="Live transcript identifier on the source.")
    webhook_url: Optional[str] = Field(
        default=None,
        description="Endpoint that receives every event. Defaults to WEBHOOK_URL.",
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Source API token. Defaults to BRIDGE_API_TOKEN.",
    )


class BridgeResponse(BaseModel):
    """State of a running bridge."""

    id: str = Field(description="Bridge identifier.")
    transcript_id: str = Field(description="Live transcript identifier.")
    webhook_url: str = Field(description="Webhook receiving the events.")
    state: str = Field(description="connecting, authenticating, streaming or closed.")
    received: int = Field(description="Events decoded from the source.")
    forwarded: int = Field(description="Events accepted by the webhook.")
    failed: int = Field(description="Events the webhook did not accept.")


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Consistent error body for all 4xx/5xx responses."""

    detail: str = Field(description="Human-readable error message.")


class HealthResponse(BaseModel):
    status: str = Field(description="Always 'ok' when the server is up.")
    version: str = Field(description="Package version.")
    sessions: int = Field(description="Sessions currently registered.")
    bridges: int = Field(description="Bridges currently running.")
