"""FastAPI application: replay triggers, live-push WebSocket, and bridges.

WHY: Consumers need an HTTP API to list recorded transcripts, start a
paced replay (either by connecting a WebSocket or by receiving webhook
POSTs), inspect sessions in flight, and relay live transcripts. FastAPI
provides automatic OpenAPI documentation, request validation, WebSocket
routes, and background task support.

HOW: POST /rerun creates a live-push session and returns the WebSocket
URL; the replay starts when the consumer connects to /ws/{session_id}.
POST /broadcast creates a webhook session and replays it in a background
task (or inline with wait=true). Bridge endpoints drive the
BridgeManager.

RULES:
- The session store and bridge manager are singletons created at import
- Every endpoint has tags, a summary, and a description
- Error responses use the ErrorResponse schema
- An unknown session on the WebSocket gets one SESSION_NOT_FOUND frame
- Periodic cleanup expires unclaimed sessions; shutdown stops all bridges
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, WebSocket
from fastapi.responses import JSONResponse, Response
from starlette.websockets import WebSocketDisconnect

from replay_broadcaster import __version__
from replay_broadcaster.bridge.adapter import BridgeConfig
from replay_broadcaster.bridge.manager import BridgeInfo, BridgeManager
from replay_broadcaster.config import (
    CLEANUP_INTERVAL_SECONDS,
    PUBLIC_WS_URL,
    TRANSCRIPT_DIR,
    WEBHOOK_URL,
    load_bridge_token,
)
from replay_broadcaster.core.loader import (
    TranscriptFormatError,
    TranscriptNotFoundError,
    load_all_transcripts,
    load_transcript,
    resolve_transcript_path,
)
from replay_broadcaster.core.records import SESSION_NOT_FOUND, TranscriptRecord
from replay_broadcaster.server.models import (
    BridgeRequest,
    BridgeResponse,
    BroadcastRequest,
    BroadcastResponse,
    ErrorResponse,
    HealthResponse,
    RerunRequest,
    SessionResponse,
    TranscriptFileResponse,
    TranscriptRecordModel,
    WebsocketInfo,
)
from replay_broadcaster.server.scheduler import ReplayResult, replay_session
from replay_broadcaster.server.sessions import (
    Session,
    SessionExistsError,
    SessionLimitError,
    SessionStore,
    SinkKind,
)
from replay_broadcaster.sinks.live_push import ConsumerDisconnectedError, LivePushSink
from replay_broadcaster.sinks.webhook import WebhookDeliveryError, WebhookSink

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

session_store = SessionStore()
bridge_manager = BridgeManager()


async def _periodic_cleanup() -> None:
    """Expire unclaimed sessions every few minutes."""
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        session_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup; stop it and all bridges on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    stopped = await bridge_manager.stop_all()
    if stopped:
        logger.info("Stopped %d bridge(s) on shutdown", stopped)


app = FastAPI(
    lifespan=lifespan,
    title="Transcript Replay Broadcaster API",
    description=(
        "Replays recorded conversation transcripts in real time over a "
        "WebSocket or to a webhook, and relays live transcription streams "
        "to a webhook."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_records(filename: str) -> List[TranscriptRecord]:
    """Load a transcript by filename, mapping loader errors to HTTP errors."""
    try:
        path = resolve_transcript_path(TRANSCRIPT_DIR, filename)
        return load_transcript(path)
    except TranscriptNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except (TranscriptFormatError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=422, detail="Invalid transcript: {}".format(exc))


def _create_session(
    records: List[TranscriptRecord],
    sink_kind: SinkKind,
    filename: str,
    session_id: Optional[str],
) -> Session:
    try:
        return session_store.create_session(
            records, sink_kind, filename=filename, session_id=session_id,
        )
    except SessionExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except SessionLimitError as exc:
        raise HTTPException(status_code=429, detail=str(exc))


def _websocket_base(request: Request) -> Tuple[str, int]:
    """Return (base URL, port) consumers should use for /ws/{id}."""
    if PUBLIC_WS_URL:
        base = PUBLIC_WS_URL.rstrip("/")
    else:
        scheme = "wss" if request.url.scheme == "https" else "ws"
        base = "{}://{}".format(scheme, request.url.netloc)

    port = request.url.port
    if port is None:
        port = 443 if base.startswith("wss") else 80
    return base, port


def _open_webhook_sink(url: str) -> WebhookSink:
    return WebhookSink(url)


async def _run_webhook_broadcast(session_id: str, url: str, speed: float) -> ReplayResult:
    async with _open_webhook_sink(url) as sink:
        return await replay_session(session_id, session_store, sink, speed=speed)


async def _run_webhook_broadcast_background(session_id: str, url: str, speed: float) -> None:
    """Background wrapper: failures are logged, the session is already retired."""
    try:
        await _run_webhook_broadcast(session_id, url, speed)
    except WebhookDeliveryError as exc:
        logger.error("Webhook broadcast %s failed: %s", session_id, exc)
    except Exception:
        logger.exception("Webhook broadcast %s crashed", session_id)


def _session_to_response(session: Session) -> SessionResponse:
    return SessionResponse(
        id=session.id,
        filename=session.filename,
        sink_kind=session.sink_kind,
        status=session.status,
        cursor=session.cursor,
        total=session.total,
        created_at=session.created_at,
        started_at=session.started_at,
    )


def _bridge_to_response(info: BridgeInfo) -> BridgeResponse:
    return BridgeResponse(
        id=info.id,
        transcript_id=info.transcript_id,
        webhook_url=info.webhook_url,
        state=info.state.value,
        received=info.received,
        forwarded=info.forwarded,
        failed=info.failed,
    )


# ---------------------------------------------------------------------------
# Endpoints: Transcripts
# ---------------------------------------------------------------------------


@app.get(
    "/transcripts",
    response_model=List[TranscriptFileResponse],
    tags=["transcripts"],
    summary="List all transcripts",
    description=(
        "Returns every CSV transcript in the transcript directory with its "
        "records. Unreadable files are skipped."
    ),
)
async def list_transcripts() -> List[TranscriptFileResponse]:
    return [
        TranscriptFileResponse(
            filename=f.filename,
            records=[TranscriptRecordModel(**r.to_dict()) for r in f.records],
        )
        for f in load_all_transcripts(TRANSCRIPT_DIR)
    ]


# ---------------------------------------------------------------------------
# Endpoints: Replay
# ---------------------------------------------------------------------------


@app.post(
    "/rerun",
    response_model=WebsocketInfo,
    tags=["replay"],
    summary="Start a live-push replay",
    description=(
        "Creates a replay session for the transcript and returns the "
        "WebSocket URL to connect to. The replay starts when a consumer "
        "connects; records arrive at the original conversation's pace."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Transcript not found"},
        409: {"model": ErrorResponse, "description": "Session ID already in use"},
        422: {"model": ErrorResponse, "description": "Transcript could not be parsed"},
        429: {"model": ErrorResponse, "description": "Too many concurrent sessions"},
    },
)
async def rerun_transcript(body: RerunRequest, request: Request) -> WebsocketInfo:
    logger.info("Rerunning transcript: %s", body.filename)
    records = _load_records(body.filename)
    session = _create_session(records, SinkKind.LIVE_PUSH, body.filename, body.session_id)

    base, port = _websocket_base(request)
    return WebsocketInfo(
        websocket_url="{}/ws/{}".format(base, session.id),
        session_id=session.id,
        port=port,
    )


@app.post(
    "/broadcast",
    response_model=BroadcastResponse,
    status_code=202,
    tags=["replay"],
    summary="Start a webhook replay",
    description=(
        "Creates a replay session and POSTs each record to the webhook at "
        "the original pace. The broadcast stops at the first failed POST. "
        "With wait=true the request returns after the broadcast finishes "
        "(200 on success, 502 on delivery failure)."
    ),
    responses={
        200: {"model": BroadcastResponse, "description": "Broadcast finished (wait=true)"},
        400: {"model": ErrorResponse, "description": "No webhook URL configured"},
        404: {"model": ErrorResponse, "description": "Transcript not found"},
        409: {"model": ErrorResponse, "description": "Session ID already in use"},
        429: {"model": ErrorResponse, "description": "Too many concurrent sessions"},
        502: {"model": BroadcastResponse, "description": "Webhook delivery failed (wait=true)"},
    },
)
async def broadcast_transcript(
    body: BroadcastRequest,
    background_tasks: BackgroundTasks,
) -> Response:
    url = body.webhook_url or WEBHOOK_URL
    if not url:
        raise HTTPException(
            status_code=400,
            detail="No webhook_url given and WEBHOOK_URL is not configured.",
        )

    records = _load_records(body.filename)
    session = _create_session(records, SinkKind.WEBHOOK, body.filename, body.session_id)

    if not body.wait:
        background_tasks.add_task(
            _run_webhook_broadcast_background, session.id, url, body.speed,
        )
        resp = BroadcastResponse(session_id=session.id, status="accepted", total=session.total)
        return JSONResponse(status_code=202, content=resp.model_dump())

    try:
        result = await _run_webhook_broadcast(session.id, url, body.speed)
    except WebhookDeliveryError as exc:
        resp = BroadcastResponse(
            session_id=session.id,
            status="failed",
            total=session.total,
            error=str(exc),
        )
        return JSONResponse(status_code=502, content=resp.model_dump())

    resp = BroadcastResponse(
        session_id=session.id,
        status="completed",
        delivered=result.delivered,
        total=result.total,
    )
    return JSONResponse(status_code=200, content=resp.model_dump())


@app.websocket("/ws/{session_id}")
async def replay_websocket(websocket: WebSocket, session_id: str) -> None:
    """Replay a live-push session over this connection."""
    await websocket.accept()
    logger.info("New WebSocket connection for session %s", session_id)

    try:
        result = await replay_session(session_id, session_store, LivePushSink(websocket))
    except ConsumerDisconnectedError as exc:
        logger.warning("Error broadcasting messages: %s", exc)
        return

    if not result.found:
        try:
            await websocket.send_text(SESSION_NOT_FOUND)
        except (WebSocketDisconnect, RuntimeError):
            return

    try:
        await websocket.close()
    except (WebSocketDisconnect, RuntimeError):
        logger.debug("Consumer for %s closed first", session_id)


# ---------------------------------------------------------------------------
# Endpoints: Sessions
# ---------------------------------------------------------------------------


@app.get(
    "/sessions",
    response_model=List[SessionResponse],
    tags=["sessions"],
    summary="List registered sessions",
    description="Returns every session that is pending or replaying, oldest first.",
)
async def list_sessions() -> List[SessionResponse]:
    return [_session_to_response(s) for s in session_store.list_sessions()]


@app.get(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    tags=["sessions"],
    summary="Get a session",
    description=(
        "Returns the session's status and cursor. Finished sessions are "
        "removed, so they return 404."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_session(session_id: str) -> SessionResponse:
    session = session_store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found: {}".format(session_id))
    return _session_to_response(session)


# ---------------------------------------------------------------------------
# Endpoints: Bridges
# ---------------------------------------------------------------------------


@app.post(
    "/bridges",
    response_model=BridgeResponse,
    status_code=201,
    tags=["bridges"],
    summary="Start a live transcription bridge",
    description=(
        "Connects to the live transcription source for the given transcript "
        "and forwards every transcription event to the webhook."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Missing token or webhook URL"},
    },
)
async def start_bridge(body: BridgeRequest) -> BridgeResponse:
    url = body.webhook_url or WEBHOOK_URL
    if not url:
        raise HTTPException(
            status_code=400,
            detail="No webhook_url given and WEBHOOK_URL is not configured.",
        )
    try:
        token = body.api_token or load_bridge_token()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    bridge_id = bridge_manager.start_bridge(BridgeConfig(
        api_token=token,
        transcript_id=body.transcript_id,
        webhook_url=url,
    ))
    info = bridge_manager.get_bridge(bridge_id)
    if info is None:
        raise HTTPException(status_code=500, detail="Bridge exited before it started")
    return _bridge_to_response(info)


@app.get(
    "/bridges",
    response_model=List[BridgeResponse],
    tags=["bridges"],
    summary="List running bridges",
    description="Returns every running bridge with its state and event counters.",
)
async def list_bridges() -> List[BridgeResponse]:
    return [_bridge_to_response(b) for b in bridge_manager.list_bridges()]


@app.delete(
    "/bridges/{bridge_id}",
    status_code=204,
    tags=["bridges"],
    summary="Stop a bridge",
    description="Disconnects from the live source and stops forwarding.",
    responses={
        404: {"model": ErrorResponse, "description": "Bridge not found"},
    },
)
async def stop_bridge(bridge_id: str) -> Response:
    if not await bridge_manager.stop_bridge(bridge_id):
        raise HTTPException(status_code=404, detail="Bridge not found: {}".format(bridge_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        sessions=len(session_store),
        bridges=len(bridge_manager.list_bridges()),
    )


def run_api(host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Entry point for serving the API with uvicorn."""
    import uvicorn

    from replay_broadcaster.config import API_HOST, API_PORT

    uvicorn.run(app, host=host or API_HOST, port=port or API_PORT)
