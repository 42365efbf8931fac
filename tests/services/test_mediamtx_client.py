"""Unit tests for MediaMTXClient against the mock relay."""

import httpx
import pytest

from relaycast.services.mediamtx_client import MediaMTXApiError, MediaMTXClient
from tools.mock_mediamtx import app as mock_app


@pytest.fixture
def live_relay():
    mock_app.state.live = True
    yield httpx.ASGITransport(app=mock_app)
    mock_app.state.live = True


class TestMediaMTXClient:
    """Tests for the control API client."""

    @pytest.mark.asyncio
    async def test_ping(self, live_relay):
        client = MediaMTXClient("http://relay", transport=live_relay)

        assert await client.ping() is True

    @pytest.mark.asyncio
    async def test_ping_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = MediaMTXClient("http://relay", transport=httpx.MockTransport(handler))

        assert await client.ping() is False

    @pytest.mark.asyncio
    async def test_ping_non_2xx(self):
        client = MediaMTXClient(
            "http://relay", transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )

        assert await client.ping() is False

    @pytest.mark.asyncio
    async def test_list_paths_live(self, live_relay):
        client = MediaMTXClient("http://relay", transport=live_relay)

        paths = await client.list_paths()

        assert paths.item_count == 1
        assert paths.has_live_source() is True
        path = paths.items[0]
        assert path.conf_name == "all_others"
        assert path.source is not None and path.source.type == "rtmpConn"
        assert [t.type for t in path.tracks] == ["video", "audio"]
        assert path.reader_count == 1

    @pytest.mark.asyncio
    async def test_list_paths_idle(self, live_relay):
        mock_app.state.live = False
        client = MediaMTXClient("http://relay", transport=live_relay)

        paths = await client.list_paths()

        assert paths.item_count == 0
        assert paths.has_live_source() is False

    @pytest.mark.asyncio
    async def test_list_paths_http_error(self):
        client = MediaMTXClient(
            "http://relay", transport=httpx.MockTransport(lambda r: httpx.Response(500))
        )

        with pytest.raises(MediaMTXApiError):
            await client.list_paths()

    @pytest.mark.asyncio
    async def test_list_paths_invalid_json(self):
        client = MediaMTXClient(
            "http://relay",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="not json")),
        )

        with pytest.raises(MediaMTXApiError):
            await client.list_paths()

    @pytest.mark.asyncio
    async def test_list_paths_unexpected_shape(self):
        client = MediaMTXClient(
            "http://relay",
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"items": [{"ready": True}]})
            ),
        )

        with pytest.raises(MediaMTXApiError):
            await client.list_paths()

    @pytest.mark.asyncio
    async def test_source_without_ready_is_not_live(self):
        payload = {
            "itemCount": 1,
            "items": [{"name": "live/stream", "ready": False, "source": {"type": "rtmpConn"}}],
        }
        client = MediaMTXClient(
            "http://relay", transport=httpx.MockTransport(lambda r: httpx.Response(200, json=payload))
        )

        paths = await client.list_paths()

        assert paths.has_live_source() is False
