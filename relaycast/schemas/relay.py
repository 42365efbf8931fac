"""Relay configuration, status and MediaMTX control-API models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .relay_state import StreamProbe

VIDEO_CODECS = {
    "AV1",
    "VP8",
    "VP9",
    "H264",
    "H265",
    "MPEG-4 Video",
    "MPEG-1/2 Video",
    "M-JPEG",
}


class CamelModel(BaseModel):
    """Model serialised with camelCase keys, accepting either naming on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RelayProcessConfig(CamelModel):
    """Ports and availability of the relay process.

    Frozen: a running relay keeps the config it was started with; changing it
    goes through RelaySupervisor.update_config() while stopped.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    rtmp_port: int = Field(1935, ge=1, le=65535, description="RTMP ingest port")
    webrtc_port: int = Field(8889, ge=1, le=65535, description="WebRTC playback port")
    hls_port: int = Field(8888, ge=1, le=65535, description="HLS playback port")
    api_port: int = Field(9997, ge=1, le=65535, description="Relay control API port")
    enabled: bool = Field(True, description="Whether the relay binary was found")


class RelayStatus(CamelModel):
    """Single status object combining supervisor state and relay API data."""

    enabled: bool
    server_running: bool
    stream_active: bool
    rtmp_ingest_url: str
    webrtc_playback_url: str
    hls_playback_url: str
    stream_probe: StreamProbe = StreamProbe.SKIPPED


class PathSource(CamelModel):
    type: str
    id: str = ""


class PathTrack(CamelModel):
    type: str
    codec: str


class PathReader(CamelModel):
    type: str
    id: str = ""


class StreamPath(CamelModel):
    """A publish path reported by the relay (`/v3/paths/list` item)."""

    name: str
    conf_name: str | None = None
    source: PathSource | None = None
    ready: bool = False
    ready_time: str | None = None
    tracks: list[PathTrack] = Field(default_factory=list)
    bytes_received: int = 0
    bytes_sent: int = 0
    readers: list[PathReader] = Field(default_factory=list)

    @field_validator("tracks", mode="before")
    @classmethod
    def _normalize_tracks(cls, value: Any) -> Any:
        # MediaMTX v3 lists tracks as bare codec names
        if not isinstance(value, list):
            return value
        normalized = []
        for track in value:
            if isinstance(track, str):
                normalized.append(
                    {"type": "video" if track in VIDEO_CODECS else "audio", "codec": track}
                )
            else:
                normalized.append(track)
        return normalized

    @property
    def reader_count(self) -> int:
        return len(self.readers)

    @property
    def is_live(self) -> bool:
        return self.ready and self.source is not None


class StreamPathList(CamelModel):
    """Page of publish paths as returned by the relay."""

    item_count: int = 0
    page_count: int = 0
    items: list[StreamPath] = Field(default_factory=list)

    def has_live_source(self) -> bool:
        return any(item.is_live for item in self.items)
