"""Media sinks a playback transport delivers into.

A sink stands for the element that renders the stream. Rendering itself
lives outside this package: the sink only owns the hand-off points (remote
tracks, a native HLS source URL, or an HLS loader) and drains remote tracks
so aiortc does not buffer frames nobody reads.
"""

import asyncio

from aiortc.contrib.media import MediaBlackhole
from aiortc.mediastreams import MediaStreamTrack
from loguru import logger


class MediaSinkError(Exception):
    """The rendering element reported a load failure."""


class MediaSink:
    kind = "media"

    def __init__(self, *, native_hls: bool = False, drain: bool = True):
        self.supports_native_hls = native_hls
        self.tracks: list[MediaStreamTrack] = []
        self.source: str | None = None
        self.loader = None
        self._blackhole = MediaBlackhole() if drain else None
        self._metadata_loaded = asyncio.Event()
        self._media_error: str | None = None
        self._drains: set[asyncio.Future] = set()

    def attach_track(self, track: MediaStreamTrack) -> None:
        logger.debug("{} sink received {} track", self.kind, track.kind)
        self.tracks.append(track)
        if self._blackhole is not None:
            self._blackhole.addTrack(track)
            # start() only picks up tracks it has not consumed yet
            task = asyncio.ensure_future(self._blackhole.start())
            self._drains.add(task)
            task.add_done_callback(self._drain_done)

    def _drain_done(self, task: asyncio.Future) -> None:
        self._drains.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("{} sink failed to drain track: {}", self.kind, task.exception())

    def set_source(self, url: str) -> None:
        self.source = url
        self._metadata_loaded.clear()
        self._media_error = None

    def attach_loader(self, loader) -> None:
        self.loader = loader

    def notify_metadata_loaded(self) -> None:
        self._metadata_loaded.set()

    def notify_media_error(self, message: str) -> None:
        self._media_error = message
        self._metadata_loaded.set()

    async def wait_metadata(self, timeout: float) -> None:
        """Wait until the native source has loaded metadata.

        Raises:
            asyncio.TimeoutError: nothing loaded in time
            MediaSinkError: the element reported an error while loading
        """
        await asyncio.wait_for(self._metadata_loaded.wait(), timeout)
        if self._media_error is not None:
            raise MediaSinkError(self._media_error)

    async def detach(self) -> None:
        """Drop every hand-off. Safe to call repeatedly."""
        if self._drains:
            await asyncio.gather(*self._drains, return_exceptions=True)
        if self._blackhole is not None and self.tracks:
            await self._blackhole.stop()
            self._blackhole = MediaBlackhole()
        self.tracks = []
        self.source = None
        self.loader = None
        self._metadata_loaded.clear()
        self._media_error = None


class AudioSink(MediaSink):
    kind = "audio"


class VideoSink(MediaSink):
    kind = "video"
