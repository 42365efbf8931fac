"""Shared schemas for the relay supervisor and its API."""

from .relay import (
    PathReader,
    PathSource,
    PathTrack,
    RelayProcessConfig,
    RelayStatus,
    StreamPath,
    StreamPathList,
)
from .relay_state import RelayProcessState, StreamProbe

__all__ = [
    "PathReader",
    "PathSource",
    "PathTrack",
    "RelayProcessConfig",
    "RelayProcessState",
    "RelayStatus",
    "StreamPath",
    "StreamPathList",
    "StreamProbe",
]
