"""Unit tests for PlaybackNegotiator."""

import asyncio
import itertools

import pytest

from relaycast.client.negotiator import PlaybackNegotiator, RetryLimitReached
from relaycast.client.playback_models import (
    AUDIO_UNREACHABLE_MESSAGE,
    HLS_FATAL_MESSAGE,
    MAX_RETRIES_MESSAGE,
    VIDEO_UNREACHABLE_MESSAGE,
    ConnectionState,
    PlaybackMode,
    TransportKind,
)
from relaycast.client.sinks import AudioSink, VideoSink
from relaycast.client.transports import PlaybackTransport, SignalingError, TransportError

_ids = itertools.count(1)


class FakeTransport(PlaybackTransport):
    """Scripted transport recording open/close calls into a shared log."""

    def __init__(
        self,
        kind,
        log,
        *,
        fail=None,
        result=ConnectionState.CONNECTED,
        latency=100,
        gate=None,
        close_delay=0.0,
    ):
        self.id = next(_ids)
        self.kind = kind
        self.nominal_latency_ms = latency
        self.log = log
        self.fail = fail
        self.result = result
        self.gate = gate
        self.opened = asyncio.Event()
        self.on_state = None
        self.close_calls = 0
        self.close_delay = close_delay

    async def open(self, sink, on_state):
        self.log.append(("open", self.id))
        self.on_state = on_state
        self.opened.set()
        if self.gate is not None:
            try:
                await self.gate.wait()
            except asyncio.CancelledError:
                await self.close()
                raise
        if self.fail is not None:
            raise self.fail
        return self.result

    async def close(self):
        self.close_calls += 1
        self.log.append(("close", self.id))
        if self.close_delay:
            await asyncio.sleep(self.close_delay)


class Script:
    """Transport factories producing FakeTransports from a list of behaviours per kind."""

    def __init__(self, **behaviours):
        self.log: list[tuple[str, int]] = []
        self.created: list[FakeTransport] = []
        self.behaviours = behaviours

    def factory(self, kind: TransportKind, latency: int):
        def build() -> PlaybackTransport:
            options = self.behaviours.get(kind.value, {})
            if isinstance(options, list):
                options = options.pop(0) if len(options) > 1 else options[0]
            transport = FakeTransport(kind, self.log, latency=latency, **options)
            self.created.append(transport)
            return transport

        return build

    @property
    def factories(self):
        return [self.factory(TransportKind.WEBRTC, 100), self.factory(TransportKind.HLS, 2000)]


def failing():
    return {"fail": SignalingError("WebRTC signaling failed: 500 Internal Server Error")}


def make_negotiator(script: Script, *, mode=PlaybackMode.AUDIO_VIDEO, active=True, **kwargs):
    states = []
    errors = []
    sink = AudioSink(drain=False) if mode == PlaybackMode.AUDIO else VideoSink(drain=False)
    negotiator = PlaybackNegotiator(
        sink,
        mode=mode,
        is_stream_active=active,
        transports=script.factories,
        on_state_change=lambda session: states.append(session),
        on_error=errors.append,
        **kwargs,
    )
    return negotiator, states, errors


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


class TestConnect:
    """Tests for transport selection."""

    @pytest.mark.asyncio
    async def test_inactive_stream_does_no_network(self):
        script = Script()
        negotiator, states, _ = make_negotiator(script, active=False)

        await negotiator.connect()

        assert negotiator.session.state == ConnectionState.DISCONNECTED
        assert negotiator.session.transport == TransportKind.NONE
        assert script.created == []

    @pytest.mark.asyncio
    async def test_webrtc_preferred(self):
        script = Script()
        negotiator, _, errors = make_negotiator(script)

        await negotiator.connect()

        session = negotiator.session
        assert session.state == ConnectionState.CONNECTED
        assert session.transport == TransportKind.WEBRTC
        assert session.latency_ms == 100
        assert [t.kind for t in script.created] == [TransportKind.WEBRTC]
        assert errors == []

    @pytest.mark.asyncio
    async def test_falls_back_to_hls_without_error_state(self):
        script = Script(webrtc=failing())
        negotiator, states, errors = make_negotiator(script)

        await negotiator.connect()

        assert negotiator.session.state == ConnectionState.CONNECTED
        assert negotiator.session.transport == TransportKind.HLS
        assert negotiator.session.latency_ms == 2000
        assert ConnectionState.ERROR not in [s.state for s in states]
        assert [(s.state, s.transport) for s in states] == [
            (ConnectionState.CONNECTING, TransportKind.WEBRTC),
            (ConnectionState.CONNECTING, TransportKind.HLS),
            (ConnectionState.CONNECTED, TransportKind.HLS),
        ]
        assert errors == []
        assert script.created[0].close_calls >= 1

    @pytest.mark.asyncio
    async def test_all_transports_fail(self):
        script = Script(webrtc=failing(), hls={"fail": TransportError("HLS network error")})
        negotiator, _, errors = make_negotiator(script)

        await negotiator.connect()

        session = negotiator.session
        assert session.state == ConnectionState.ERROR
        assert session.transport == TransportKind.NONE
        assert session.error_message == VIDEO_UNREACHABLE_MESSAGE
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_audio_mode_error_message(self):
        script = Script(webrtc=failing(), hls={"fail": TransportError("HLS network error")})
        negotiator, _, _ = make_negotiator(script, mode=PlaybackMode.AUDIO)

        await negotiator.connect()

        assert negotiator.session.error_message == AUDIO_UNREACHABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_unexpected_transport_exception_is_contained(self):
        script = Script(webrtc={"fail": RuntimeError("boom")})
        negotiator, _, _ = make_negotiator(script)

        await negotiator.connect()

        assert negotiator.session.transport == TransportKind.HLS
        assert negotiator.session.state == ConnectionState.CONNECTED

    def test_audio_session_rejects_video_sink(self):
        with pytest.raises(ValueError):
            PlaybackNegotiator(VideoSink(drain=False), mode=PlaybackMode.AUDIO, transports=[])

    @pytest.mark.asyncio
    async def test_listener_errors_do_not_propagate(self):
        script = Script()

        def broken(session):
            raise RuntimeError("listener failed")

        negotiator = PlaybackNegotiator(
            VideoSink(drain=False),
            is_stream_active=True,
            transports=script.factories,
            on_state_change=broken,
        )

        await negotiator.connect()

        assert negotiator.session.state == ConnectionState.CONNECTED


class TestRetry:
    """Tests for the bounded manual retry."""

    @pytest.mark.asyncio
    async def test_retry_limit(self):
        script = Script(webrtc=failing(), hls={"fail": TransportError("HLS network error")})
        negotiator, _, errors = make_negotiator(script)
        await negotiator.connect()

        assert await negotiator.retry() is True
        assert await negotiator.retry() is True
        assert await negotiator.retry() is True
        assert negotiator.session.reconnect_attempts == 3
        assert negotiator.session.retry_disabled is True
        assert negotiator.session.retry_label == "Max retries reached"
        created = len(script.created)

        assert await negotiator.retry() is False

        session = negotiator.session
        assert session.reconnect_attempts == 3
        assert session.retry_disabled is True
        assert session.state == ConnectionState.ERROR
        assert session.error_message == MAX_RETRIES_MESSAGE
        assert session.retry_label == "Max retries reached"
        assert len(script.created) == created
        assert isinstance(errors[-1], RetryLimitReached)

    @pytest.mark.asyncio
    async def test_successful_connection_resets_attempts(self):
        script = Script(webrtc=[failing(), failing(), {}], hls=[{"fail": TransportError("down")}, {"fail": TransportError("down")}, {}])
        negotiator, _, _ = make_negotiator(script)
        await negotiator.connect()
        await negotiator.retry()
        assert negotiator.session.reconnect_attempts == 1

        await negotiator.retry()

        assert negotiator.session.state == ConnectionState.CONNECTED
        assert negotiator.session.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_retry_from_disconnected_at_limit(self):
        script = Script()
        negotiator, _, _ = make_negotiator(script, active=False)
        negotiator.session.reconnect_attempts = 3

        assert await negotiator.retry() is False
        assert negotiator.session.state == ConnectionState.ERROR


class TestSupersede:
    """Tests for overlapping connect attempts."""

    @pytest.mark.asyncio
    async def test_new_connect_tears_down_outstanding_attempt(self):
        gate = asyncio.Event()
        script = Script(webrtc=[{"gate": gate}, {}])
        negotiator, states, errors = make_negotiator(script)

        first = asyncio.create_task(negotiator.connect())
        await settle()
        first_transport = script.created[0]
        assert first_transport.opened.is_set()

        await negotiator.connect()
        await first

        second_transport = script.created[1]
        close_index = script.log.index(("close", first_transport.id))
        open_index = script.log.index(("open", second_transport.id))
        assert close_index < open_index
        assert negotiator.session.state == ConnectionState.CONNECTED
        assert [s.state for s in states] == [
            ConnectionState.CONNECTING,
            ConnectionState.DISCONNECTED,
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ]
        assert errors == []

    @pytest.mark.asyncio
    async def test_overlapping_connects_leave_one_live_transport(self):
        script = Script(webrtc={"close_delay": 0.01})
        negotiator, _, errors = make_negotiator(script)
        await negotiator.connect()

        await asyncio.gather(negotiator.connect(), negotiator.connect())

        live = [t for t in script.created if t.close_calls == 0]
        assert len(live) == 1
        assert live[0] is script.created[-1]
        assert negotiator.session.state == ConnectionState.CONNECTED
        assert errors == []

    @pytest.mark.asyncio
    async def test_cleanup_waits_for_pending_connect(self):
        script = Script(webrtc={"close_delay": 0.01})
        negotiator, _, _ = make_negotiator(script)
        await negotiator.connect()

        await asyncio.gather(negotiator.connect(), negotiator.cleanup())

        assert all(t.close_calls >= 1 for t in script.created)

    @pytest.mark.asyncio
    async def test_stale_callbacks_are_ignored(self):
        script = Script(webrtc={"result": ConnectionState.CONNECTING})
        negotiator, _, _ = make_negotiator(script)
        await negotiator.connect()
        stale = script.created[0].on_state

        await negotiator.connect()
        stale(ConnectionState.CONNECTED, None)
        stale(ConnectionState.ERROR, "late failure")

        assert negotiator.session.state == ConnectionState.CONNECTING
        assert negotiator.session.error_message is None

        script.created[1].on_state(ConnectionState.CONNECTED, None)

        assert negotiator.session.state == ConnectionState.CONNECTED
        assert negotiator.session.latency_ms == 100


class TestTransportEvents:
    """Tests for state reported by an open transport."""

    @pytest.mark.asyncio
    async def test_webrtc_connects_later(self):
        script = Script(webrtc={"result": ConnectionState.CONNECTING})
        negotiator, _, _ = make_negotiator(script)

        await negotiator.connect()
        assert negotiator.session.state == ConnectionState.CONNECTING

        script.created[0].on_state(ConnectionState.CONNECTED, None)
        assert negotiator.session.state == ConnectionState.CONNECTED

    @pytest.mark.asyncio
    async def test_dropped_connection_disconnects(self):
        script = Script()
        negotiator, _, errors = make_negotiator(script)
        await negotiator.connect()

        script.created[0].on_state(ConnectionState.DISCONNECTED, None)

        assert negotiator.session.state == ConnectionState.DISCONNECTED
        assert errors == []

    @pytest.mark.asyncio
    async def test_hls_fatal_error_after_connect(self):
        script = Script(webrtc=failing())
        negotiator, _, errors = make_negotiator(script)
        await negotiator.connect()

        script.created[1].on_state(ConnectionState.ERROR, HLS_FATAL_MESSAGE)

        assert negotiator.session.state == ConnectionState.ERROR
        assert negotiator.session.error_message == HLS_FATAL_MESSAGE
        assert len(errors) == 1


class TestLifecycle:
    """Tests for activation, teardown and scheduled reconnects."""

    @pytest.mark.asyncio
    async def test_set_stream_active(self):
        script = Script()
        negotiator, _, _ = make_negotiator(script, active=False)

        await negotiator.set_stream_active(True)
        assert negotiator.session.state == ConnectionState.CONNECTED

        await negotiator.set_stream_active(False)
        assert negotiator.session.state == ConnectionState.DISCONNECTED
        assert negotiator.session.transport == TransportKind.NONE
        assert script.created[0].close_calls == 1

    @pytest.mark.asyncio
    async def test_cleanup_is_idempotent(self):
        script = Script()
        negotiator, _, _ = make_negotiator(script)
        await negotiator.connect()

        await negotiator.cleanup()
        await negotiator.cleanup()

        assert script.created[0].close_calls == 1

    @pytest.mark.asyncio
    async def test_close_disconnects(self):
        script = Script()
        negotiator, _, _ = make_negotiator(script)
        await negotiator.connect()

        await negotiator.close()

        assert negotiator.session.state == ConnectionState.DISCONNECTED
        assert negotiator.session.transport == TransportKind.NONE

    @pytest.mark.asyncio
    async def test_scheduled_reconnect_runs_retry(self):
        script = Script(webrtc=failing(), hls=[{"fail": TransportError("down")}, {}])
        negotiator, _, _ = make_negotiator(script)
        await negotiator.connect()
        assert negotiator.session.state == ConnectionState.ERROR

        negotiator.schedule_reconnect(0.01)
        await asyncio.sleep(0.05)
        await settle()

        assert negotiator.session.state == ConnectionState.CONNECTED
        assert negotiator.session.transport == TransportKind.HLS

    @pytest.mark.asyncio
    async def test_cleanup_cancels_scheduled_reconnect(self):
        script = Script(webrtc=failing(), hls={"fail": TransportError("down")})
        negotiator, _, _ = make_negotiator(script)
        await negotiator.connect()
        created = len(script.created)

        negotiator.schedule_reconnect(0.02)
        await negotiator.cleanup()
        await asyncio.sleep(0.05)

        assert len(script.created) == created
        assert negotiator.session.reconnect_attempts == 0

    @pytest.mark.asyncio
    async def test_auto_reconnect_after_drop(self):
        script = Script()
        negotiator, _, _ = make_negotiator(script, auto_reconnect_delay=0.01)
        await negotiator.connect()

        script.created[0].on_state(ConnectionState.DISCONNECTED, None)
        await asyncio.sleep(0.05)
        await settle()

        assert len(script.created) == 2
        assert negotiator.session.state == ConnectionState.CONNECTED
        assert negotiator.session.reconnect_attempts == 0
