"""HLS playback, native when the sink supports it, otherwise via HlsLoader."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx
from loguru import logger

from relaycast.client.playback_models import HLS_FATAL_MESSAGE, ConnectionState, TransportKind
from relaycast.client.sinks import MediaSinkError

from .base import HlsFatalError, HlsUnavailableError, PlaybackTransport, StateCallback
from .hls_loader import HlsLoader, HlsLoaderConfig

if TYPE_CHECKING:
    from relaycast.client.sinks import MediaSink

METADATA_TIMEOUT = 10.0


class HlsTransport(PlaybackTransport):
    kind = TransportKind.HLS
    nominal_latency_ms = 2000

    def __init__(
        self,
        url: str,
        *,
        loader_config: HlsLoaderConfig | None = None,
        metadata_timeout: float = METADATA_TIMEOUT,
        http_transport: httpx.AsyncBaseTransport | None = None,
        loader_factory: Callable[..., HlsLoader] = HlsLoader,
    ):
        self.url = url
        self.loader_config = loader_config or HlsLoaderConfig()
        self.metadata_timeout = metadata_timeout
        self._http_transport = http_transport
        self._loader_factory = loader_factory
        self._loader: HlsLoader | None = None
        self._closed = False

    async def open(self, sink: MediaSink, on_state: StateCallback) -> ConnectionState:
        if sink.supports_native_hls:
            await self._open_native(sink)
        else:
            await self._open_loader(sink, on_state)
        logger.info("HLS playback ready: {}", self.url)
        return ConnectionState.CONNECTED

    async def _open_native(self, sink: MediaSink) -> None:
        sink.set_source(self.url)
        try:
            await sink.wait_metadata(self.metadata_timeout)
        except asyncio.TimeoutError as exc:
            raise HlsUnavailableError(f"HLS metadata not loaded within {self.metadata_timeout}s") from exc
        except MediaSinkError as exc:
            raise HlsUnavailableError(f"Failed to load HLS stream: {exc}") from exc

    async def _open_loader(self, sink: MediaSink, on_state: StateCallback) -> None:
        loader = self._loader_factory(
            self.url, self.loader_config, http_transport=self._http_transport
        )
        self._loader = loader

        def on_fatal(exc: HlsFatalError) -> None:
            if self._closed:
                return
            logger.error("HLS playback failed: {}", exc)
            on_state(ConnectionState.ERROR, HLS_FATAL_MESSAGE)

        loader.on_fatal = on_fatal
        try:
            await loader.start()
        except BaseException:
            await self.close()
            raise
        sink.attach_loader(loader)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        loader, self._loader = self._loader, None
        if loader is not None:
            await loader.stop()
            logger.debug("HLS loader stopped")
