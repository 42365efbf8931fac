from .base import (
    HlsFatalError,
    HlsUnavailableError,
    IceGatheringTimeout,
    PlaybackTransport,
    SignalingError,
    TransportError,
)
from .hls import HlsTransport
from .hls_loader import HlsLoader, HlsLoaderConfig
from .webrtc import WhepTransport, whep_endpoint

__all__ = [
    "HlsFatalError",
    "HlsLoader",
    "HlsLoaderConfig",
    "HlsTransport",
    "HlsUnavailableError",
    "IceGatheringTimeout",
    "PlaybackTransport",
    "SignalingError",
    "TransportError",
    "WhepTransport",
    "whep_endpoint",
]
