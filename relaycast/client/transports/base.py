"""Uniform contract for playback transports tried by the negotiator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

from relaycast.client.playback_models import ConnectionState, TransportKind

if TYPE_CHECKING:
    from relaycast.client.sinks import MediaSink

# (state, message) reported by a transport after open() returned
StateCallback = Callable[[ConnectionState, str | None], None]


class TransportError(Exception):
    """A transport could not be opened. The negotiator falls through to the next one."""


class SignalingError(TransportError):
    """WHEP offer/answer exchange failed (network, non-2xx, malformed answer)."""


class IceGatheringTimeout(TransportError):
    """ICE gathering did not complete in time."""


class HlsUnavailableError(TransportError):
    """HLS playback could not be set up (native load failure or no loader)."""


class HlsFatalError(TransportError):
    """Unrecoverable HLS error (invalid playlist, retries exhausted)."""


class PlaybackTransport(ABC):
    """One way of getting media from the relay into a sink.

    open() either succeeds, leaving the transport owning its resources, or
    tears down whatever it built and raises TransportError. close() is
    idempotent and safe to call at any point, including while open() is
    suspended.
    """

    kind: TransportKind = TransportKind.NONE
    nominal_latency_ms: int | None = None

    @abstractmethod
    async def open(self, sink: MediaSink, on_state: StateCallback) -> ConnectionState:
        """Establish playback into the sink.

        Returns:
            The state the session should adopt: CONNECTED when media is
            already flowing, CONNECTING when the transport will report
            CONNECTED later through on_state.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release every resource held by the transport."""
