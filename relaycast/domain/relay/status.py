"""Status aggregation for the relay: supervisor state plus live control-API data."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from relaycast.schemas import RelayProcessState, RelayStatus, StreamProbe
from relaycast.services.mediamtx_client import MediaMTXApiError

if TYPE_CHECKING:
    from .supervisor import RelaySupervisor

STREAM_PATH = "live/stream"


class RelayStatusService:
    """Builds the externally consumed status object.

    `stream_active` is False both when no path has a live source and when the
    control API cannot be read while the relay is running (it may still be
    starting up). `stream_probe` tells the two apart.
    """

    def __init__(self, supervisor: RelaySupervisor):
        self.supervisor = supervisor

    def playback_urls(self) -> dict[str, str]:
        cfg = self.supervisor.get_config()
        host = self.supervisor.public_host
        return {
            "rtmp_ingest_url": f"rtmp://{host}:{cfg.rtmp_port}/{STREAM_PATH}",
            "webrtc_playback_url": f"http://{host}:{cfg.webrtc_port}/{STREAM_PATH}",
            "hls_playback_url": f"http://{host}:{cfg.hls_port}/{STREAM_PATH}/index.m3u8",
        }

    async def check_stream_active(self) -> tuple[bool, StreamProbe]:
        try:
            paths = await self.supervisor.api.list_paths()
        except MediaMTXApiError as e:
            logger.debug("Failed to check stream status via API: {}", e)
            return False, StreamProbe.UNREACHABLE
        return paths.has_live_source(), StreamProbe.OK

    async def get_status(self) -> RelayStatus:
        # One read of the state; everything below is derived from it
        state = self.supervisor.state
        server_running = state == RelayProcessState.RUNNING

        if server_running:
            stream_active, probe = await self.check_stream_active()
        else:
            stream_active, probe = False, StreamProbe.SKIPPED

        return RelayStatus(
            enabled=self.supervisor.is_binary_available(),
            server_running=server_running,
            stream_active=stream_active,
            stream_probe=probe,
            **self.playback_urls(),
        )
