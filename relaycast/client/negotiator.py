"""Playback negotiator: picks a transport for a preview slot and keeps its state.

Transports are tried in order (WebRTC over WHEP, then HLS). Every teardown
bumps the session generation; callbacks carrying an older generation are
ignored, so a superseded attempt can never write state into the slot.
"""

import asyncio
import dataclasses
from collections.abc import Callable, Sequence

import httpx
from loguru import logger

from .playback_models import (
    AUDIO_UNREACHABLE_MESSAGE,
    DEFAULT_HLS_URL,
    DEFAULT_WEBRTC_URL,
    MAX_RECONNECT_ATTEMPTS,
    MAX_RETRIES_MESSAGE,
    VIDEO_UNREACHABLE_MESSAGE,
    ConnectionState,
    PlaybackMode,
    PlaybackSession,
    TransportKind,
)
from .playback_state_machine import PlaybackStateMachine
from .sinks import MediaSink
from .transports import HlsLoaderConfig, HlsTransport, PlaybackTransport, WhepTransport
from .transports.webrtc import ICE_GATHERING_TIMEOUT, SIGNALING_TIMEOUT

TransportFactory = Callable[[], PlaybackTransport]


class PlaybackError(Exception):
    """Reported through on_error when a session enters the error state."""


class RetryLimitReached(PlaybackError):
    pass


def default_transports(
    mode: PlaybackMode,
    webrtc_url: str,
    hls_url: str,
    *,
    ice_gathering_timeout: float = ICE_GATHERING_TIMEOUT,
    signaling_timeout: float = SIGNALING_TIMEOUT,
    loader_config: HlsLoaderConfig | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> list[TransportFactory]:
    """WebRTC first, HLS as fallback."""

    def webrtc() -> PlaybackTransport:
        return WhepTransport(
            webrtc_url,
            audio_only=mode.audio_only,
            ice_gathering_timeout=ice_gathering_timeout,
            signaling_timeout=signaling_timeout,
            http_transport=http_transport,
        )

    def hls() -> PlaybackTransport:
        return HlsTransport(hls_url, loader_config=loader_config, http_transport=http_transport)

    return [webrtc, hls]


class PlaybackNegotiator:
    """Drives one preview slot.

    Args:
        sink: where media goes. An audio session only accepts an audio sink.
        mode: audio only or audio+video, fixed for the negotiator's lifetime
        transports: ordered transport factories, defaults to WebRTC then HLS
        on_state_change: called with a snapshot of the session on every change
        on_error: called with the error whenever the session enters ERROR
        auto_reconnect_delay: when set, a dropped connection schedules a
            retry after this many seconds (still bounded by the retry limit)
    """

    def __init__(
        self,
        sink: MediaSink,
        *,
        mode: PlaybackMode = PlaybackMode.AUDIO_VIDEO,
        webrtc_url: str = DEFAULT_WEBRTC_URL,
        hls_url: str = DEFAULT_HLS_URL,
        is_stream_active: bool = False,
        transports: Sequence[TransportFactory] | None = None,
        on_state_change: Callable[[PlaybackSession], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        auto_reconnect_delay: float | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        if mode.audio_only and sink.kind == "video":
            raise ValueError("Audio playback cannot use a video sink")

        self.sink = sink
        self._mode = mode
        self.webrtc_url = webrtc_url
        self.hls_url = hls_url
        self.session = PlaybackSession(mode=mode, is_stream_active=is_stream_active)
        self._factories = list(
            transports
            if transports is not None
            else default_transports(mode, webrtc_url, hls_url, http_transport=http_transport)
        )
        self.on_state_change = on_state_change
        self.on_error = on_error
        self.auto_reconnect_delay = auto_reconnect_delay

        self._transport: PlaybackTransport | None = None
        self._attempt: asyncio.Task | None = None
        self._reconnect_timer: asyncio.TimerHandle | None = None
        self._reconnect_task: asyncio.Task | None = None
        # Held from teardown until the next attempt is registered
        self._lock = asyncio.Lock()

    @property
    def mode(self) -> PlaybackMode:
        return self._mode

    @property
    def unreachable_message(self) -> str:
        if self._mode.audio_only:
            return AUDIO_UNREACHABLE_MESSAGE
        return VIDEO_UNREACHABLE_MESSAGE

    async def connect(self) -> None:
        """Start a fresh attempt, tearing down any previous one first."""
        async with self._lock:
            await self._teardown()
            if self.session.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
                self._set_state(ConnectionState.DISCONNECTED)

            if not self.session.is_stream_active:
                logger.debug("[{}] Stream inactive, not connecting", self.session.session_id)
                self.session.transport = TransportKind.NONE
                self._set_state(ConnectionState.DISCONNECTED)
                return

            self.session.error_message = None
            task = asyncio.create_task(self._negotiate(self.session.generation))
            self._attempt = task
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                logger.debug("[{}] Connect attempt superseded", self.session.session_id)
                return
            raise
        finally:
            if self._attempt is task:
                self._attempt = None

    async def retry(self) -> bool:
        """Manual retry. Returns False once the retry limit is reached."""
        if self.session.reconnect_attempts >= MAX_RECONNECT_ATTEMPTS:
            logger.warning(
                "[{}] Retry refused after {} attempts",
                self.session.session_id,
                self.session.reconnect_attempts,
            )
            self._fail(MAX_RETRIES_MESSAGE, RetryLimitReached(MAX_RETRIES_MESSAGE))
            return False

        self.session.reconnect_attempts += 1
        logger.info(
            "[{}] Retry {}/{}",
            self.session.session_id,
            self.session.reconnect_attempts,
            MAX_RECONNECT_ATTEMPTS,
        )
        await self.connect()
        return True

    async def set_stream_active(self, active: bool) -> None:
        self.session.is_stream_active = active
        if active:
            await self.connect()
            return
        await self.cleanup()
        self.session.transport = TransportKind.NONE
        self.session.latency_ms = None
        self._set_state(ConnectionState.DISCONNECTED)

    def schedule_reconnect(self, delay: float = 2.0) -> None:
        """Retry after a delay. Replaces any pending reconnect."""
        self._cancel_reconnect_timer()
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(
            delay, self._fire_reconnect, self.session.generation
        )

    async def cleanup(self) -> None:
        """Tear down the current attempt and transport. Idempotent."""
        async with self._lock:
            await self._teardown()

    async def _teardown(self) -> None:
        self.session.generation += 1
        self._cancel_reconnect_timer()

        attempt, self._attempt = self._attempt, None
        if attempt is not None and attempt is not asyncio.current_task() and not attempt.done():
            attempt.cancel()
            await asyncio.gather(attempt, return_exceptions=True)

        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()

        await self.sink.detach()

    async def close(self) -> None:
        """Release everything; the slot is being removed."""
        reconnect, self._reconnect_task = self._reconnect_task, None
        if reconnect is not None and reconnect is not asyncio.current_task() and not reconnect.done():
            reconnect.cancel()
            await asyncio.gather(reconnect, return_exceptions=True)
        await self.cleanup()
        self.session.transport = TransportKind.NONE
        self.session.latency_ms = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def _negotiate(self, generation: int) -> None:
        for factory in self._factories:
            if generation != self.session.generation:
                return

            transport = factory()
            self._transport = transport
            self.session.transport = transport.kind
            self._set_state(ConnectionState.CONNECTING)
            logger.info("[{}] Trying {} transport", self.session.session_id, transport.kind)

            def on_state(state: ConnectionState, message: str | None, transport=transport) -> None:
                self._on_transport_state(generation, transport, state, message)

            try:
                state = await transport.open(self.sink, on_state)
            except Exception as exc:
                logger.info(
                    "[{}] {} transport failed, trying next: {}",
                    self.session.session_id,
                    transport.kind,
                    exc,
                )
                await transport.close()
                if self._transport is transport:
                    self._transport = None
                continue

            if generation != self.session.generation:
                await transport.close()
                return

            if state == ConnectionState.CONNECTED:
                self._mark_connected(transport)
            return

        self.session.transport = TransportKind.NONE
        logger.warning("[{}] All transports failed", self.session.session_id)
        self._fail(self.unreachable_message, PlaybackError(self.unreachable_message))

    def _on_transport_state(
        self,
        generation: int,
        transport: PlaybackTransport,
        state: ConnectionState,
        message: str | None,
    ) -> None:
        if generation != self.session.generation or transport is not self._transport:
            logger.debug("[{}] Ignoring stale {} callback", self.session.session_id, state)
            return

        if state == ConnectionState.CONNECTED:
            self._mark_connected(transport)
        elif state == ConnectionState.ERROR:
            error_message = message or self.unreachable_message
            self._fail(error_message, PlaybackError(error_message))
        elif state == ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)
            if self.auto_reconnect_delay is not None and self.session.is_stream_active:
                if self.session.can_retry:
                    self.schedule_reconnect(self.auto_reconnect_delay)

    def _mark_connected(self, transport: PlaybackTransport) -> None:
        self.session.transport = transport.kind
        self.session.latency_ms = transport.nominal_latency_ms
        self.session.reconnect_attempts = 0
        self.session.error_message = None
        self._set_state(ConnectionState.CONNECTED)
        logger.info(
            "[{}] Connected via {} (~{}ms)",
            self.session.session_id,
            transport.kind,
            transport.nominal_latency_ms,
        )

    def _fail(self, message: str, error: Exception) -> None:
        self.session.error_message = message
        self._set_state(ConnectionState.ERROR)
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            logger.exception("on_error listener failed")

    def _set_state(self, new_state: ConnectionState) -> None:
        current = self.session.state
        if new_state != current and not PlaybackStateMachine.can_transition(current, new_state):
            logger.warning(
                "[{}] Ignoring invalid playback transition {} -> {}",
                self.session.session_id,
                current,
                new_state,
            )
            return

        self.session.state = new_state
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(dataclasses.replace(self.session))
        except Exception:
            logger.exception("on_state_change listener failed")

    def _fire_reconnect(self, generation: int) -> None:
        self._reconnect_timer = None
        if generation != self.session.generation:
            return
        self._reconnect_task = asyncio.create_task(self.retry())

    def _cancel_reconnect_timer(self) -> None:
        timer, self._reconnect_timer = self._reconnect_timer, None
        if timer is not None:
            timer.cancel()
