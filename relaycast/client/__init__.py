from .playback_models import (
    MAX_RECONNECT_ATTEMPTS,
    ConnectionState,
    PlaybackMode,
    PlaybackSession,
    TransportKind,
)
from .negotiator import PlaybackError, PlaybackNegotiator, RetryLimitReached
from .sinks import AudioSink, MediaSink, VideoSink
from .status_monitor import LiveStreamMonitor, VideoServerStatus

__all__ = [
    "MAX_RECONNECT_ATTEMPTS",
    "AudioSink",
    "ConnectionState",
    "LiveStreamMonitor",
    "MediaSink",
    "PlaybackError",
    "PlaybackMode",
    "PlaybackNegotiator",
    "PlaybackSession",
    "RetryLimitReached",
    "TransportKind",
    "VideoServerStatus",
    "VideoSink",
]
