"""
Mock MediaMTX relay.

This FastAPI app exposes the pieces of MediaMTX that relaycast talks to, so
the backend and the playback negotiator can run locally without the real
binary:

* GET  /v3/config/global/get       - control API readiness probe
* GET  /v3/paths/list              - publish paths
* POST /live/stream/whep           - WHEP offer/answer
* GET  /live/stream/index.m3u8     - live HLS playlist

Run with granian (one instance per port is enough for local work):
    granian --interface asgi --host 127.0.0.1 --port 9997 tools.mock_mediamtx:app

Set MOCK_MEDIAMTX_LIVE=false to report an idle relay with no publisher.
"""

from __future__ import annotations

import os
import time

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

SEGMENT_DURATION = 2
PLAYLIST_SIZE = 5

app = FastAPI(title="mediamtx mock", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.live = os.environ.get("MOCK_MEDIAMTX_LIVE", "true").lower() == "true"
app.state.started_at = time.time()


@app.get("/health")
async def health():
    """Health check endpoint for container orchestration."""
    return {"status": "ok", "service": "mock-mediamtx"}


@app.get("/v3/config/global/get")
async def get_global_config():
    """Mock global configuration, used as the readiness probe."""
    return {
        "logLevel": "info",
        "api": True,
        "apiAddress": ":9997",
        "rtmp": True,
        "rtmpAddress": ":1935",
        "hls": True,
        "hlsAddress": ":8888",
        "webrtc": True,
        "webrtcAddress": ":8889",
    }


@app.get("/v3/paths/list")
async def list_paths(request: Request):
    """Mock path list. One live path when a publisher is simulated."""
    items = []
    if request.app.state.live:
        items.append(
            {
                "name": "live/stream",
                "confName": "all_others",
                "source": {"type": "rtmpConn", "id": "mock-rtmp-conn"},
                "ready": True,
                "readyTime": "2025-01-01T00:00:00Z",
                "tracks": ["H264", "MPEG-4 Audio"],
                "bytesReceived": 1048576,
                "bytesSent": 524288,
                "readers": [{"type": "webRTCSession", "id": "mock-webrtc-session"}],
            }
        )
    logger.debug("GET /v3/paths/list -> {} items", len(items))
    return {"itemCount": len(items), "pageCount": 1 if items else 0, "items": items}


@app.post("/live/stream/whep")
async def whep(request: Request):
    """Mock WHEP endpoint. Answers any SDP offer with a canned answer."""
    offer = (await request.body()).decode()
    if request.headers.get("content-type") != "application/sdp" or not offer.startswith("v=0"):
        return Response(status_code=400, content="invalid offer")
    if not request.app.state.live:
        return Response(status_code=404, content="no one is publishing to path 'live/stream'")

    answer = "\r\n".join(
        [
            "v=0",
            "o=- 0 0 IN IP4 127.0.0.1",
            "s=-",
            "t=0 0",
            "a=group:BUNDLE 0",
            "m=audio 9 UDP/TLS/RTP/SAVPF 111",
            "c=IN IP4 0.0.0.0",
            "a=mid:0",
            "a=sendonly",
            "a=rtpmap:111 opus/48000/2",
            "",
        ]
    )
    return Response(
        status_code=201,
        content=answer,
        media_type="application/sdp",
        headers={"Location": "/live/stream/whep/mock-session"},
    )


@app.get("/live/stream/index.m3u8")
async def hls_playlist(request: Request):
    """Mock sliding-window live playlist."""
    if not request.app.state.live:
        return Response(status_code=404, content="stream not found")

    elapsed = int(time.time() - request.app.state.started_at)
    media_sequence = elapsed // SEGMENT_DURATION
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        f"#EXT-X-TARGETDURATION:{SEGMENT_DURATION}",
        f"#EXT-X-MEDIA-SEQUENCE:{media_sequence}",
    ]
    for sequence in range(media_sequence, media_sequence + PLAYLIST_SIZE):
        lines.append(f"#EXTINF:{SEGMENT_DURATION:.1f},")
        lines.append(f"segment{sequence}.ts")
    return Response(
        content="\n".join(lines) + "\n",
        media_type="application/vnd.apple.mpegurl",
    )


__all__ = ["app"]
