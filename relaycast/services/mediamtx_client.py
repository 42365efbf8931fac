"""Thin async client for the MediaMTX control API (v3).

Only the endpoints the supervisor needs are wrapped:
- GET /v3/config/global/get  (readiness / health probe)
- GET /v3/paths/list         (publish paths)
"""

import httpx
from loguru import logger

from relaycast.schemas import StreamPathList


class MediaMTXApiError(Exception):
    """The control API could not be reached or answered with an unusable response."""


class MediaMTXClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )

    async def ping(self) -> bool:
        """Return True when the control API answers with a 2xx status."""
        try:
            async with self._client() as client:
                response = await client.get("/v3/config/global/get")
            return response.is_success
        except httpx.HTTPError as e:
            logger.debug("MediaMTX API ping failed: {}", e)
            return False

    async def list_paths(self) -> StreamPathList:
        """Fetch the publish paths.

        Raises:
            MediaMTXApiError: on transport errors, non-2xx status or a malformed body
        """
        try:
            async with self._client() as client:
                response = await client.get("/v3/paths/list")
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise MediaMTXApiError(f"paths list request failed: {e}") from e
        except ValueError as e:
            raise MediaMTXApiError(f"paths list returned invalid JSON: {e}") from e

        try:
            return StreamPathList.model_validate(data)
        except ValueError as e:
            logger.exception("Failed to validate paths list response")
            raise MediaMTXApiError(f"paths list returned an unexpected shape: {e}") from e
