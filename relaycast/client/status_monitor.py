"""Dashboard-side relay status monitor.

Polls GET /api/video/status and drives start/stop. When the backend is
down or reports the relay as unavailable, it falls back to an offline
status pointing at the default local URLs.
"""

import asyncio
from typing import Any

import httpx
from loguru import logger

from relaycast.client.playback_models import DEFAULT_HLS_URL, DEFAULT_WEBRTC_URL
from relaycast.schemas.relay import CamelModel

DEFAULT_API_BASE = "http://localhost:3123"
DEFAULT_RTMP_URL = "rtmp://localhost:1935/live/stream"
DEFAULT_STREAM_KEY = "stream"
POLL_INTERVAL = 5.0


class LiveStreamError(Exception):
    """A start/stop request was rejected or could not be sent."""


class StreamStats(CamelModel):
    bitrate: float = 0
    fps: float = 0
    resolution: str = ""
    uptime: float = 0


class VideoServerStatus(CamelModel):
    is_running: bool = False
    is_streaming: bool = False
    rtmp_url: str = DEFAULT_RTMP_URL
    stream_key: str = DEFAULT_STREAM_KEY
    webrtc_url: str = DEFAULT_WEBRTC_URL
    hls_url: str = DEFAULT_HLS_URL
    stats: StreamStats | None = None

    @classmethod
    def offline(cls) -> "VideoServerStatus":
        return cls()

    @classmethod
    def from_backend(cls, data: dict[str, Any]) -> "VideoServerStatus":
        """Map backend field names, accepting either naming."""

        def pick(*keys: str, default: Any) -> Any:
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return default

        return cls(
            is_running=pick("serverRunning", "isRunning", default=False),
            is_streaming=pick("streamActive", "isStreaming", default=False),
            rtmp_url=pick("rtmpIngestUrl", "rtmpUrl", default=DEFAULT_RTMP_URL),
            stream_key=pick("streamKey", default=DEFAULT_STREAM_KEY),
            webrtc_url=pick("webrtcPlaybackUrl", "webrtcUrl", default=DEFAULT_WEBRTC_URL),
            hls_url=pick("hlsPlaybackUrl", "hlsUrl", default=DEFAULT_HLS_URL),
            stats=pick("stats", default=None),
        )


def _unwrap(payload: Any) -> dict[str, Any]:
    if isinstance(payload, dict) and isinstance(payload.get("results"), dict):
        return payload["results"]
    return payload if isinstance(payload, dict) else {}


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        payload = response.json()
    except ValueError:
        return fallback
    if not isinstance(payload, dict):
        return fallback
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return payload.get("message") or fallback


class LiveStreamMonitor:
    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        poll_interval: float = POLL_INTERVAL,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.poll_interval = poll_interval
        self.status: VideoServerStatus | None = None
        self.error: str | None = None
        self.is_loading = True
        self.is_action_pending = False
        self._client = httpx.AsyncClient(
            base_url=self.api_base, timeout=timeout, transport=transport
        )
        self._poll_task: asyncio.Task | None = None

    async def fetch_status(self) -> VideoServerStatus:
        try:
            response = await self._client.get("/api/video/status")
            if response.status_code in (404, 503):
                self.status = VideoServerStatus.offline()
                self.error = None
                return self.status
            if not response.is_success:
                raise LiveStreamError(
                    f"Failed to fetch video status: {response.reason_phrase}"
                )
            self.status = VideoServerStatus.from_backend(_unwrap(response.json()))
            self.error = None
        except (httpx.HTTPError, LiveStreamError, ValueError) as exc:
            logger.debug("Video status fetch failed: {}", exc)
            self.status = VideoServerStatus.offline()
            self.error = str(exc) or "Failed to fetch video status"
        finally:
            self.is_loading = False
        return self.status

    async def start_server(self) -> VideoServerStatus:
        return await self._action("/api/video/start", "Failed to start server")

    async def stop_server(self) -> VideoServerStatus:
        return await self._action("/api/video/stop", "Failed to stop server")

    async def _action(self, path: str, failure: str) -> VideoServerStatus:
        self.is_action_pending = True
        self.error = None
        try:
            try:
                response = await self._client.post(path)
            except httpx.HTTPError as exc:
                raise LiveStreamError(f"{failure}: {exc}") from exc
            if not response.is_success:
                raise LiveStreamError(
                    _error_message(response, f"{failure}: {response.reason_phrase}")
                )
            return await self.fetch_status()
        except LiveStreamError as exc:
            self.error = str(exc)
            raise
        finally:
            self.is_action_pending = False

    def start(self) -> None:
        """Fetch now, then every poll_interval seconds."""
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def aclose(self) -> None:
        await self.stop()
        await self._client.aclose()

    async def _poll_loop(self) -> None:
        while True:
            await self.fetch_status()
            await asyncio.sleep(self.poll_interval)
