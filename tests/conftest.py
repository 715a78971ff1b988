"""Shared test fixtures for the replay_broadcaster test suite.

WHY: Loader, scheduler, sink and API tests all need the same small
recorded conversation, both as records in memory and as a CSV file in a
transcript directory.

HOW: SAMPLE_ROWS is the single source of the sample conversation.
Fixtures expose it as TranscriptRecord objects and write it to a
temporary transcript directory. RecordingSink and RecordingSleep are
in-memory doubles for the scheduler's sink and sleep dependencies.

RULES:
- Time codes in SAMPLE_ROWS give pacing waits [0, 5, 0, 7]
- No test touches the real network; HTTP goes through httpx.MockTransport
"""

from __future__ import annotations

import asyncio
import csv
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from replay_broadcaster.core.records import TranscriptRecord
from replay_broadcaster.server.sessions import SinkKind
from replay_broadcaster.sinks.base import DeliveryError, Sink


SAMPLE_ROWS: List[Tuple[str, str, str]] = [
    ("0", "Alice", "Good morning, everyone."),
    ("5", "Bob", "Morning! Shall we start?"),
    ("5", "Alice", "Yes, first item is the budget."),
    ("12", "Bob", "I sent the numbers yesterday."),
]


def write_csv(path: Path, rows, header=("time_code", "speaker", "sentence")) -> Path:
    """Write a transcript CSV with the given header and rows."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        if header is not None:
            writer.writerow(header)
        writer.writerows(rows)
    return path


class RecordingSink(Sink):
    """Sink double that records every delivery.

    fail_at: zero-based record index at which deliver() raises
    DeliveryError instead of recording.
    """

    def __init__(self, fail_at: Optional[int] = None) -> None:
        self.delivered: List[Tuple[str, Optional[TranscriptRecord]]] = []
        self.fail_at = fail_at

    @property
    def kind(self) -> SinkKind:
        return SinkKind.WEBHOOK

    async def deliver(self, session_id, record):
        if record is not None and self.fail_at is not None:
            if len(self.records) == self.fail_at:
                raise DeliveryError("simulated failure")
        self.delivered.append((session_id, record))

    @property
    def records(self) -> List[TranscriptRecord]:
        return [r for _, r in self.delivered if r is not None]

    @property
    def completions(self) -> int:
        return sum(1 for _, r in self.delivered if r is None)


class FakeConnection:
    """Async context manager and iterator standing in for a websockets client.

    Yields the scripted frames in order, then either ends the stream or,
    with hold_open, blocks until cancelled.
    """

    def __init__(self, frames, hold_open=False):
        self.frames = list(frames)
        self.hold_open = hold_open
        self.sent = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def send(self, message):
        self.sent.append(message)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame
        if self.hold_open:
            await asyncio.Event().wait()


def fake_connect(connection):
    """Return a connect() replacement that always hands out connection."""
    urls = []

    def connect(url):
        urls.append(url)
        return connection

    connect.urls = urls
    return connect


class RecordingSleep:
    """Replacement for asyncio.sleep that records the requested waits."""

    def __init__(self) -> None:
        self.waits: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


@pytest.fixture
def sample_records() -> List[TranscriptRecord]:
    return [TranscriptRecord(t, s, x) for t, s, x in SAMPLE_ROWS]


@pytest.fixture
def transcript_dir(tmp_path: Path) -> Path:
    """A transcript directory holding meeting.csv with the sample rows."""
    directory = tmp_path / "transcript"
    directory.mkdir()
    write_csv(directory / "meeting.csv", SAMPLE_ROWS)
    return directory
