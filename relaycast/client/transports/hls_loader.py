"""Live HLS playlist loader for sinks without native HLS support.

Fetches the playlist with httpx, follows the first variant of a master
playlist, keeps refreshing the media playlist and hands segment URIs to
the sink while holding playback close to the live edge.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx
from loguru import logger

from .base import HlsFatalError


@dataclass(frozen=True)
class HlsLoaderConfig:
    low_latency_mode: bool = True
    # Start this many target durations behind the live edge
    live_sync_duration_count: int = 3
    # Jump back to the sync point when further behind than this
    live_max_latency_duration_count: int = 10
    max_network_retries: int = 3
    retry_delay: float = 1.0
    request_timeout: float = 5.0


@dataclass(frozen=True)
class HlsSegment:
    sequence: int
    duration: float
    uri: str


@dataclass
class MediaPlaylist:
    target_duration: float = 0.0
    media_sequence: int = 0
    segments: list[HlsSegment] = field(default_factory=list)
    ended: bool = False

    @property
    def total_duration(self) -> float:
        return sum(segment.duration for segment in self.segments)


def _number(tag: str, cast):
    value = tag.split(":", 1)[1]
    try:
        return cast(value)
    except ValueError as exc:
        raise HlsFatalError(f"Invalid HLS playlist tag: {tag}") from exc


def parse_playlist(text: str, base_url: str) -> tuple[list[str], MediaPlaylist]:
    """Parse an m3u8 document.

    Returns:
        (variant URIs, media playlist). A master playlist yields variants
        and an empty media playlist.

    Raises:
        HlsFatalError: the document is not an HLS playlist
    """
    lines = [line.strip() for line in text.splitlines()]
    if not lines or lines[0] != "#EXTM3U":
        raise HlsFatalError("Invalid HLS playlist: missing #EXTM3U header")

    base = httpx.URL(base_url)
    variants: list[str] = []
    playlist = MediaPlaylist()
    pending_duration: float | None = None
    expect_variant = False

    for line in lines[1:]:
        if not line:
            continue
        if line.startswith("#EXT-X-STREAM-INF"):
            expect_variant = True
        elif line.startswith("#EXT-X-TARGETDURATION:"):
            playlist.target_duration = _number(line, float)
        elif line.startswith("#EXT-X-MEDIA-SEQUENCE:"):
            playlist.media_sequence = _number(line, int)
        elif line.startswith("#EXTINF:"):
            pending_duration = _number(line.split(",", 1)[0], float)
        elif line.startswith("#EXT-X-ENDLIST"):
            playlist.ended = True
        elif line.startswith("#"):
            continue
        elif expect_variant:
            variants.append(str(base.join(line)))
            expect_variant = False
        elif pending_duration is not None:
            playlist.segments.append(
                HlsSegment(
                    sequence=playlist.media_sequence + len(playlist.segments),
                    duration=pending_duration,
                    uri=str(base.join(line)),
                )
            )
            pending_duration = None

    return variants, playlist


class HlsLoader:
    """Minimal live HLS client.

    start() resolves once the first media playlist is parsed. Network errors
    are retried internally; once retries run out, or a playlist is invalid,
    the error is fatal: start() raises it, or on_fatal is called when the
    loader was already playing.
    """

    def __init__(
        self,
        url: str,
        config: HlsLoaderConfig | None = None,
        *,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.config = config or HlsLoaderConfig()
        self.on_fatal: Callable[[HlsFatalError], None] | None = None
        self.playlist_url = url
        self.playlist: MediaPlaylist | None = None
        self.manifest_parsed = asyncio.Event()
        self.segments: asyncio.Queue[HlsSegment] = asyncio.Queue(
            maxsize=max(1, self.config.live_max_latency_duration_count)
        )
        self._client = httpx.AsyncClient(
            timeout=self.config.request_timeout, transport=http_transport
        )
        self._next_sequence: int | None = None
        self._refresh_task: asyncio.Task | None = None
        self._stopped = False

    async def start(self) -> None:
        try:
            text = await self._fetch(self.url)
            variants, playlist = parse_playlist(text, self.url)
            if variants:
                self.playlist_url = variants[0]
                logger.debug("HLS master playlist, using variant {}", self.playlist_url)
                text = await self._fetch(self.playlist_url)
                _, playlist = parse_playlist(text, self.playlist_url)
        except BaseException:
            await self.stop()
            raise

        self._apply(playlist)
        self.manifest_parsed.set()
        logger.info(
            "HLS manifest parsed: {} segments, target duration {}s",
            len(playlist.segments),
            playlist.target_duration,
        )

        if not playlist.ended:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    def live_sync_sequence(self, playlist: MediaPlaylist) -> int:
        """First segment to play when (re)joining the live edge."""
        if not playlist.segments:
            return playlist.media_sequence
        hold_back = self.config.live_sync_duration_count * playlist.target_duration
        position = playlist.total_duration
        for segment in reversed(playlist.segments):
            position -= segment.duration
            if playlist.total_duration - position >= hold_back:
                return segment.sequence
        return playlist.segments[0].sequence

    def _apply(self, playlist: MediaPlaylist) -> None:
        self.playlist = playlist
        if not playlist.segments:
            return

        last_sequence = playlist.segments[-1].sequence
        max_behind = self.config.live_max_latency_duration_count
        if self._next_sequence is None:
            self._next_sequence = self.live_sync_sequence(playlist)
        elif (
            last_sequence - self._next_sequence >= max_behind
            or self._next_sequence < playlist.media_sequence
        ):
            sync = self.live_sync_sequence(playlist)
            logger.warning(
                "HLS playback fell behind the live edge, jumping from {} to {}",
                self._next_sequence,
                sync,
            )
            self._next_sequence = sync

        for segment in playlist.segments:
            if segment.sequence < self._next_sequence:
                continue
            if self.segments.full():
                # Oldest pending segment is the one furthest from live
                self.segments.get_nowait()
            self.segments.put_nowait(segment)
            self._next_sequence = segment.sequence + 1

    async def _refresh_loop(self) -> None:
        while not self._stopped:
            playlist = self.playlist
            if playlist is None:
                return
            interval = playlist.target_duration or 1.0
            if self.config.low_latency_mode:
                interval /= 2
            await asyncio.sleep(interval)

            try:
                text = await self._fetch(self.playlist_url)
                _, playlist = parse_playlist(text, self.playlist_url)
            except HlsFatalError as exc:
                logger.error("HLS fatal error: {}", exc)
                self._stopped = True
                await self._client.aclose()
                if self.on_fatal is not None:
                    self.on_fatal(exc)
                return

            self._apply(playlist)
            if playlist.ended:
                logger.info("HLS playlist ended")
                return

    async def _fetch(self, url: str) -> str:
        attempts = self.config.max_network_retries + 1
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client.get(url)
                response.raise_for_status()
                return response.text
            except httpx.HTTPError as exc:
                last_error = exc
                logger.debug("HLS fetch failed ({}/{}): {}", attempt, attempts, exc)
                if attempt < attempts:
                    await asyncio.sleep(self.config.retry_delay)
        raise HlsFatalError(f"HLS network error: {last_error}") from last_error

    async def stop(self) -> None:
        if self._stopped and self._refresh_task is None:
            return
        self._stopped = True
        task, self._refresh_task = self._refresh_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._client.aclose()
