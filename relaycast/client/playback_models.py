"""Playback session model shared by the negotiator, transports and sinks."""

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

MAX_RECONNECT_ATTEMPTS = 3

DEFAULT_WEBRTC_URL = "http://localhost:8889/live/stream"
DEFAULT_HLS_URL = "http://localhost:8888/live/stream/index.m3u8"

VIDEO_UNREACHABLE_MESSAGE = "Could not establish connection to the video stream"
AUDIO_UNREACHABLE_MESSAGE = "Unable to connect to audio stream"
MAX_RETRIES_MESSAGE = (
    "Unable to connect after multiple attempts. Please check your stream settings."
)
HLS_FATAL_MESSAGE = "Failed to play HLS stream"


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


class TransportKind(str, Enum):
    WEBRTC = "webrtc"
    HLS = "hls"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


class PlaybackMode(str, Enum):
    """What the preview slot plays. Chosen by the caller, fixed for the session."""

    AUDIO = "audio"
    AUDIO_VIDEO = "audio_video"

    def __str__(self) -> str:
        return self.value

    @property
    def audio_only(self) -> bool:
        return self is PlaybackMode.AUDIO


@dataclass
class PlaybackSession:
    """Connection state of one preview slot, as rendered by the UI."""

    mode: PlaybackMode
    is_stream_active: bool = False
    state: ConnectionState = ConnectionState.DISCONNECTED
    transport: TransportKind = TransportKind.NONE
    reconnect_attempts: int = 0
    error_message: str | None = None
    # Nominal end-to-end latency of the active transport
    latency_ms: int | None = None
    # Bumped on every teardown; callbacks of older attempts compare against it
    generation: int = 0
    session_id: str = field(default_factory=lambda: uuid4().hex[:8])

    @property
    def can_retry(self) -> bool:
        return self.reconnect_attempts < MAX_RECONNECT_ATTEMPTS

    @property
    def retry_disabled(self) -> bool:
        return not self.can_retry

    @property
    def retry_label(self) -> str:
        return "Retry Connection" if self.can_retry else "Max retries reached"
