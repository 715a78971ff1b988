"""Tests for the live transcription bridge.

WHY: The bridge relays events nobody can replay, so a decode error or a
failed POST must cost exactly one event and never the stream. Auth and
frame classification decide which frames become events at all.

HOW: BridgeEvent decoding and BridgeAdapter.handle_frame() are tested
directly. The full adapter run uses a fake connect() that yields a
scripted list of frames. WebhookForwarder posts through
httpx.MockTransport.

RULES:
- No test opens a network connection
- Async code runs under asyncio.run() inside synchronous tests
"""

from __future__ import annotations

import asyncio
import json
import logging

import httpx
import pytest

from replay_broadcaster.bridge.adapter import BridgeAdapter, BridgeConfig, BridgeState
from replay_broadcaster.bridge.events import BridgeDecodeError, BridgeEvent
from replay_broadcaster.bridge.forwarder import WebhookForwarder
from replay_broadcaster.bridge.manager import BridgeManager, run_bridge

from conftest import FakeConnection, fake_connect

WEBHOOK = "http://hooks.test/live"

EVENT_DATA = {
    "type": "transcription",
    "timestamp": 1700000000,
    "speaker": "Dana",
    "text": "Let's get started.",
    "confidence": 0.93,
    "is_final": True,
    "transcriptId": "t-1",
}


def _frame(frame_type, data=None) -> str:
    return json.dumps({"type": frame_type, "data": data})


def _config(**kwargs) -> BridgeConfig:
    values = dict(api_token="secret", transcript_id="t-1", webhook_url=WEBHOOK)
    values.update(kwargs)
    return BridgeConfig(**values)


class CapturingHandler:
    def __init__(self, statuses=None):
        self.bodies = []
        self.statuses = statuses or {}

    def __call__(self, request):
        index = len(self.bodies)
        self.bodies.append(json.loads(request.content))
        return httpx.Response(self.statuses.get(index, 200))


def _forwarder(handler) -> WebhookForwarder:
    return WebhookForwarder(WEBHOOK, transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# BridgeEvent
# ---------------------------------------------------------------------------


class TestBridgeEvent:

    def test_from_dict(self):
        event = BridgeEvent.from_dict(EVENT_DATA)
        assert event.kind == "transcription"
        assert event.speaker == "Dana"
        assert event.text == "Let's get started."
        assert event.confidence == pytest.approx(0.93)
        assert event.is_final is True
        assert event.transcript_id == "t-1"

    def test_optional_fields_absent(self):
        data = {k: EVENT_DATA[k] for k in ("type", "timestamp", "speaker", "text")}
        event = BridgeEvent.from_dict(data)
        assert event.confidence is None
        assert event.is_final is None
        assert "transcriptId" not in event.to_dict()

    def test_to_dict_uses_wire_keys(self):
        assert BridgeEvent.from_dict(EVENT_DATA).to_dict() == EVENT_DATA

    def test_integer_confidence_becomes_float(self):
        event = BridgeEvent.from_dict(dict(EVENT_DATA, confidence=1))
        assert isinstance(event.confidence, float)

    @pytest.mark.parametrize("patch", [
        {"speaker": None},
        {"text": 42},
        {"timestamp": "soon"},
        {"timestamp": True},
        {"confidence": "high"},
        {"is_final": "yes"},
    ])
    def test_invalid_field(self, patch):
        with pytest.raises(BridgeDecodeError):
            BridgeEvent.from_dict(dict(EVENT_DATA, **patch))

    def test_missing_field(self):
        data = dict(EVENT_DATA)
        del data["text"]
        with pytest.raises(BridgeDecodeError, match="text"):
            BridgeEvent.from_dict(data)

    def test_not_an_object(self):
        with pytest.raises(BridgeDecodeError):
            BridgeEvent.from_dict(["not", "an", "object"])


# ---------------------------------------------------------------------------
# BridgeAdapter.handle_frame
# ---------------------------------------------------------------------------


class TestHandleFrame:

    def test_transcription_frame_queues_one_event(self):
        async def run():
            adapter = BridgeAdapter(_config())
            adapter.handle_frame(_frame("transcription.broadcast", EVENT_DATA))
            return adapter

        adapter = asyncio.run(run())
        assert adapter.events.qsize() == 1
        event = adapter.events.get_nowait()
        assert (event.speaker, event.text, event.confidence) == ("Dana", "Let's get started.", 0.93)
        assert adapter.received == 1

    def test_invalid_payload_dropped_and_logged(self, caplog):
        async def run():
            adapter = BridgeAdapter(_config())
            with caplog.at_level(logging.ERROR, logger="replay_broadcaster.bridge.adapter"):
                keep_going = adapter.handle_frame(
                    _frame("transcription.broadcast", {"speaker": "Dana"})
                )
            return adapter, keep_going

        adapter, keep_going = asyncio.run(run())
        assert keep_going is True
        assert adapter.events.qsize() == 0
        assert "Failed to decode transcription event" in caplog.text

    def test_auth_success_streams(self):
        adapter = BridgeAdapter(_config(), events=asyncio.Queue())
        assert adapter.handle_frame(_frame("auth.success", {"ok": True})) is True
        assert adapter.state == BridgeState.STREAMING

    def test_auth_failed_stops(self):
        adapter = BridgeAdapter(_config(), events=asyncio.Queue())
        assert adapter.handle_frame(_frame("auth.failed", "bad token")) is False

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2, 3]",
        b"\x00\x01",
        _frame("connection.established"),
        _frame("connection.error", "oops"),
        json.dumps({"type": "ping"}),
    ])
    def test_non_event_frames_queue_nothing(self, raw):
        adapter = BridgeAdapter(_config(), events=asyncio.Queue())
        assert adapter.handle_frame(raw) is True
        assert adapter.events.qsize() == 0

    def test_bare_event_without_wrapper(self):
        adapter = BridgeAdapter(_config(), events=asyncio.Queue())
        adapter.handle_frame(json.dumps(EVENT_DATA))
        assert adapter.events.qsize() == 1

    def test_auth_message(self):
        message = json.loads(BridgeAdapter(_config(), events=asyncio.Queue()).auth_message())
        assert message == {
            "type": "authenticate",
            "data": {"token": "Bearer secret", "transcriptId": "t-1"},
        }


# ---------------------------------------------------------------------------
# BridgeAdapter.run
# ---------------------------------------------------------------------------


class TestAdapterRun:

    def test_authenticates_then_streams_events(self):
        connection = FakeConnection([
            _frame("connection.established"),
            _frame("auth.success"),
            _frame("transcription.broadcast", EVENT_DATA),
            _frame("transcription.broadcast", dict(EVENT_DATA, text="Second.")),
        ])
        connect = fake_connect(connection)

        async def run():
            adapter = BridgeAdapter(_config(url="wss://live.test"), connect=connect)
            await adapter.run()
            return adapter

        adapter = asyncio.run(run())
        assert connect.urls == ["wss://live.test"]
        assert json.loads(connection.sent[0])["type"] == "authenticate"
        assert adapter.received == 2
        assert adapter.state == BridgeState.CLOSED

    def test_auth_failure_ends_stream(self):
        connection = FakeConnection([
            _frame("auth.failed", "bad token"),
            _frame("transcription.broadcast", EVENT_DATA),
        ])

        async def run():
            adapter = BridgeAdapter(_config(), connect=fake_connect(connection))
            await adapter.run()
            return adapter

        assert asyncio.run(run()).received == 0

    def test_connect_timeout_is_logged_not_raised(self, caplog):
        def connect(url):
            raise asyncio.TimeoutError()

        async def run():
            adapter = BridgeAdapter(_config(), connect=connect)
            await adapter.run()
            return adapter

        with caplog.at_level(logging.ERROR, logger="replay_broadcaster.bridge.adapter"):
            adapter = asyncio.run(run())
        assert adapter.state == BridgeState.CLOSED
        assert "Bridge connection for t-1 failed" in caplog.text

    def test_connection_error_is_logged_not_raised(self, caplog):
        def connect(url):
            raise OSError("unreachable")

        async def run():
            adapter = BridgeAdapter(_config(), connect=connect)
            await adapter.run()
            return adapter

        with caplog.at_level(logging.ERROR, logger="replay_broadcaster.bridge.adapter"):
            adapter = asyncio.run(run())
        assert adapter.state == BridgeState.CLOSED
        assert "unreachable" in caplog.text


# ---------------------------------------------------------------------------
# WebhookForwarder
# ---------------------------------------------------------------------------


class TestForwarder:

    def test_payload_shape(self):
        payload = WebhookForwarder.payload(BridgeEvent.from_dict(EVENT_DATA))
        assert payload["source"] == "bridge"
        assert payload["event"] == EVENT_DATA
        assert isinstance(payload["timestamp"], int)

    def test_continues_after_failure(self):
        handler = CapturingHandler(statuses={0: 500})
        events = [BridgeEvent.from_dict(dict(EVENT_DATA, text=t)) for t in ("a", "b", "c")]

        async def run():
            queue = asyncio.Queue()
            for event in events:
                queue.put_nowait(event)
            queue.put_nowait(None)
            async with _forwarder(handler) as forwarder:
                forwarded = await forwarder.drain(queue)
                return forwarded, forwarder.failed

        forwarded, failed = asyncio.run(run())
        assert (forwarded, failed) == (2, 1)
        assert [b["event"]["text"] for b in handler.bodies] == ["a", "b", "c"]

    def test_transport_error_is_not_raised(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async def run():
            async with WebhookForwarder(WEBHOOK, transport=httpx.MockTransport(handler)) as fwd:
                return await fwd.forward(BridgeEvent.from_dict(EVENT_DATA))

        assert asyncio.run(run()) is False


# ---------------------------------------------------------------------------
# run_bridge / BridgeManager
# ---------------------------------------------------------------------------


class TestRunBridge:

    def test_forwards_everything_before_returning(self):
        handler = CapturingHandler()
        connection = FakeConnection([
            _frame("auth.success"),
            _frame("transcription.broadcast", EVENT_DATA),
            _frame("transcription.broadcast", dict(EVENT_DATA, text="Bye.")),
        ])

        async def run():
            adapter = BridgeAdapter(_config(), connect=fake_connect(connection))
            return await run_bridge(adapter, _forwarder(handler))

        assert asyncio.run(run()) == 2
        assert [b["event"]["text"] for b in handler.bodies] == ["Let's get started.", "Bye."]

    def test_adapter_error_stops_forwarder(self):
        class FailingAdapter(BridgeAdapter):
            async def run(self):
                raise RuntimeError("source exploded")

        async def run():
            adapter = FailingAdapter(_config())
            with pytest.raises(RuntimeError, match="source exploded"):
                await run_bridge(adapter, _forwarder(CapturingHandler()))
            return [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]

        assert asyncio.run(run()) == []


class TestBridgeManager:

    def _manager(self, connection, handler):
        return BridgeManager(
            adapter_factory=lambda config: BridgeAdapter(config, connect=fake_connect(connection)),
            forwarder_factory=lambda url: WebhookForwarder(url, transport=httpx.MockTransport(handler)),
        )

    def test_start_list_stop(self):
        handler = CapturingHandler()
        connection = FakeConnection([_frame("auth.success")], hold_open=True)
        manager = self._manager(connection, handler)

        async def run():
            bridge_id = manager.start_bridge(_config())
            await asyncio.sleep(0.01)
            info = manager.get_bridge(bridge_id)
            listed = [b.id for b in manager.list_bridges()]
            stopped = await manager.stop_bridge(bridge_id)
            return bridge_id, info, listed, stopped

        bridge_id, info, listed, stopped = asyncio.run(run())
        assert listed == [bridge_id]
        assert info.transcript_id == "t-1"
        assert info.webhook_url == WEBHOOK
        assert info.state == BridgeState.STREAMING
        assert stopped is True
        assert manager.get_bridge(bridge_id) is None

    def test_stop_unknown_returns_false(self):
        manager = BridgeManager()
        assert asyncio.run(manager.stop_bridge("nope")) is False

    def test_bridge_removes_itself_when_source_closes(self):
        handler = CapturingHandler()
        connection = FakeConnection([
            _frame("auth.success"),
            _frame("transcription.broadcast", EVENT_DATA),
        ])
        manager = self._manager(connection, handler)

        async def run():
            manager.start_bridge(_config())
            for _ in range(100):
                if not manager.list_bridges():
                    break
                await asyncio.sleep(0.01)
            return manager.list_bridges()

        assert asyncio.run(run()) == []
        assert len(handler.bodies) == 1

    def test_stop_all(self):
        connection = FakeConnection([], hold_open=True)
        manager = self._manager(connection, CapturingHandler())

        async def run():
            manager.start_bridge(_config())
            manager.start_bridge(_config(transcript_id="t-2"))
            await asyncio.sleep(0)
            return await manager.stop_all()

        assert asyncio.run(run()) == 2
        assert manager.list_bridges() == []
