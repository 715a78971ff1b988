"""Configuration constants and .env loading.

WHY: The API server, the replay sinks, and the bridge all need the same
handful of tunables (where transcripts live, where webhooks go, how long
an unclaimed session may linger). Keeping them in one module makes them
easy to find and override per deployment.

HOW: python-dotenv loads the .env file on import. Constants are plain
module-level values read from os.environ with defaults. The
load_bridge_token() function provides a clear error when the live source
token is missing.

RULES:
- All defaults can be overridden via environment variables
- The bridge token is loaded from .env, never hardcoded
- WEBHOOK_TIMEOUT_S applies per POST request, never per session
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the server is started from)
load_dotenv()

# ---------------------------------------------------------------------------
# Transcript source
# ---------------------------------------------------------------------------

TRANSCRIPT_DIR = os.getenv("TRANSCRIPT_DIR", "transcript")
TRANSCRIPT_SUFFIX = ".csv"

# ---------------------------------------------------------------------------
# HTTP / WebSocket server
# ---------------------------------------------------------------------------

API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "3030"))

PUBLIC_WS_URL = os.getenv("PUBLIC_WS_URL", "").strip() or None
"""Base URL handed to live-push consumers, e.g. ``wss://replay.example.com``.

When unset, the base is derived from the incoming request."""

# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "3600"))
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "100"))
CLEANUP_INTERVAL_SECONDS = 300

# ---------------------------------------------------------------------------
# Webhook delivery
# ---------------------------------------------------------------------------

WEBHOOK_URL = os.getenv("WEBHOOK_URL", "").strip() or None
WEBHOOK_TIMEOUT_S = float(os.getenv("WEBHOOK_TIMEOUT_S", "30"))

# ---------------------------------------------------------------------------
# Live transcription bridge
# ---------------------------------------------------------------------------

BRIDGE_URL = os.getenv("BRIDGE_URL", "wss://api.fireflies.ai")
BRIDGE_SOURCE_TAG = "bridge"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def load_bridge_token() -> str:
    """Load the live transcription source API token from the environment.

    WHY: The bridge must authenticate before the source streams any
    events. Loading the token from the environment keeps it out of
    source code and request bodies.

    RULES:
    - Raises ValueError if the token is missing or empty
    - Never returns a default/placeholder value
    """
    token = os.getenv("BRIDGE_API_TOKEN", "").strip()
    if not token:
        raise ValueError(
            "Bridge API token not configured. "
            "Add BRIDGE_API_TOKEN to the .env file or pass a token explicitly."
        )
    return token
