"""WebRTC playback over WHEP (WebRTC-HTTP Egress Protocol)."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx
from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from loguru import logger

from relaycast.client.playback_models import ConnectionState, TransportKind

from .base import (
    IceGatheringTimeout,
    PlaybackTransport,
    SignalingError,
    StateCallback,
    TransportError,
)

if TYPE_CHECKING:
    from relaycast.client.sinks import MediaSink

DEFAULT_ICE_SERVERS = ["stun:stun.l.google.com:19302"]
ICE_GATHERING_TIMEOUT = 5.0
SIGNALING_TIMEOUT = 10.0

_PEER_STATES = {
    "connected": ConnectionState.CONNECTED,
    "disconnected": ConnectionState.DISCONNECTED,
    "failed": ConnectionState.DISCONNECTED,
    "closed": ConnectionState.DISCONNECTED,
}


def whep_endpoint(url: str) -> str:
    """Map a WebRTC playback URL onto the relay's WHEP endpoint."""
    if url.startswith("ws://"):
        url = "http://" + url[len("ws://") :]
    elif url.startswith("wss://"):
        url = "https://" + url[len("wss://") :]
    url = url.rstrip("/")
    if url.endswith("/whep"):
        return url
    return f"{url}/whep"


async def wait_for_ice_gathering(pc: RTCPeerConnection) -> None:
    if pc.iceGatheringState == "complete":
        return
    done = asyncio.Event()

    @pc.on("icegatheringstatechange")
    def on_state_change() -> None:
        if pc.iceGatheringState == "complete":
            done.set()

    await done.wait()


class WhepTransport(PlaybackTransport):
    """Receive-only peer connection negotiated with a single WHEP POST."""

    kind = TransportKind.WEBRTC
    nominal_latency_ms = 100

    def __init__(
        self,
        url: str,
        *,
        audio_only: bool = False,
        ice_servers: list[str] | None = None,
        ice_gathering_timeout: float = ICE_GATHERING_TIMEOUT,
        signaling_timeout: float = SIGNALING_TIMEOUT,
        http_transport: httpx.AsyncBaseTransport | None = None,
        pc_factory: Callable[..., Any] = RTCPeerConnection,
    ):
        self.endpoint = whep_endpoint(url)
        self.audio_only = audio_only
        self.ice_servers = ice_servers if ice_servers is not None else DEFAULT_ICE_SERVERS
        self.ice_gathering_timeout = ice_gathering_timeout
        self.signaling_timeout = signaling_timeout
        self._http_transport = http_transport
        self._pc_factory = pc_factory
        self._pc = None
        self._closed = False

    async def open(self, sink: MediaSink, on_state: StateCallback) -> ConnectionState:
        configuration = RTCConfiguration(iceServers=[RTCIceServer(urls=self.ice_servers)])
        pc = self._pc_factory(configuration=configuration)
        self._pc = pc

        @pc.on("track")
        def on_track(track) -> None:
            if self._closed:
                return
            if self.audio_only and track.kind != "audio":
                logger.debug("Ignoring {} track in audio-only session", track.kind)
                return
            sink.attach_track(track)

        try:
            pc.addTransceiver("audio", direction="recvonly")
            if not self.audio_only:
                pc.addTransceiver("video", direction="recvonly")

            await self._gather(pc)
            answer = await self._post_offer(pc.localDescription.sdp)
            await pc.setRemoteDescription(RTCSessionDescription(sdp=answer, type="answer"))
        except TransportError:
            await self.close()
            raise
        except asyncio.CancelledError:
            await self.close()
            raise
        except Exception as exc:
            await self.close()
            raise SignalingError(f"WebRTC negotiation failed: {exc}") from exc

        @pc.on("connectionstatechange")
        def on_connection_state() -> None:
            state = _PEER_STATES.get(pc.connectionState)
            if state is None or self._closed:
                return
            logger.debug("WHEP peer connection state: {}", pc.connectionState)
            on_state(state, None)

        logger.info("WHEP session negotiated with {}", self.endpoint)
        if pc.connectionState == "connected":
            return ConnectionState.CONNECTED
        return ConnectionState.CONNECTING

    async def _gather(self, pc) -> None:
        # aiortc gathers candidates inside setLocalDescription
        async def gather() -> None:
            offer = await pc.createOffer()
            await pc.setLocalDescription(offer)
            await wait_for_ice_gathering(pc)

        try:
            await asyncio.wait_for(gather(), self.ice_gathering_timeout)
        except asyncio.TimeoutError as exc:
            raise IceGatheringTimeout(
                f"ICE gathering did not complete within {self.ice_gathering_timeout}s"
            ) from exc

    async def _post_offer(self, sdp: str) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=self.signaling_timeout, transport=self._http_transport
            ) as client:
                response = await client.post(
                    self.endpoint,
                    content=sdp,
                    headers={"Content-Type": "application/sdp"},
                )
        except httpx.TimeoutException as exc:
            raise SignalingError(f"WebRTC signaling timed out: {self.endpoint}") from exc
        except httpx.HTTPError as exc:
            raise SignalingError(f"WebRTC signaling request failed: {exc}") from exc

        if not response.is_success:
            raise SignalingError(
                f"WebRTC signaling failed: {response.status_code} {response.reason_phrase}"
            )

        answer = response.text
        if not answer.lstrip().startswith("v="):
            raise SignalingError("WebRTC signaling returned a malformed SDP answer")
        return answer

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        pc, self._pc = self._pc, None
        if pc is None:
            return
        pc.remove_all_listeners()
        await pc.close()
        logger.debug("WHEP peer connection closed")
