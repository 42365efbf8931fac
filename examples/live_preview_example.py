"""Example: live preview against a running relaycast backend.

This script follows what the dashboard does: poll the relay status, start
the relay when needed, and once a publisher is live negotiate playback
(WebRTC first, HLS as fallback) for an audio+video preview slot.

Prerequisites:
    1. Install dependencies: pip install -e .
    2. Start the backend: python -m relaycast.main
    3. Publish to the RTMP ingest URL printed below (e.g. from OBS)

Run:
    python examples/live_preview_example.py
"""

import asyncio

from relaycast.client import (
    ConnectionState,
    LiveStreamMonitor,
    PlaybackNegotiator,
    VideoSink,
)


async def main():
    """Start the relay and preview the live stream."""

    print("Live Preview Example")
    print("=" * 50)

    monitor = LiveStreamMonitor("http://localhost:3123")
    negotiator = None

    try:
        status = await monitor.fetch_status()
        if not status.is_running:
            print("\n1. Starting relay:")
            status = await monitor.start_server()
        print(f"   RTMP ingest: {status.rtmp_url} (key: {status.stream_key})")
        print(f"   WebRTC:      {status.webrtc_url}")
        print(f"   HLS:         {status.hls_url}")

        print("\n2. Waiting for a publisher:")
        while not status.is_streaming:
            await asyncio.sleep(monitor.poll_interval)
            status = await monitor.fetch_status()
        print("   Stream is live")

        print("\n3. Negotiating playback:")
        negotiator = PlaybackNegotiator(
            VideoSink(),
            webrtc_url=status.webrtc_url,
            hls_url=status.hls_url,
            on_state_change=lambda s: print(f"   {s.state} via {s.transport}"),
        )
        await negotiator.set_stream_active(True)

        session = negotiator.session
        while session.state == ConnectionState.ERROR and session.can_retry:
            print(f"   {session.error_message}, retrying")
            await negotiator.retry()

        if session.state == ConnectionState.ERROR:
            print(f"   {session.error_message}")
        else:
            print(f"   Playing via {session.transport} (~{session.latency_ms}ms)")
            await asyncio.sleep(10)

    except Exception as e:
        print(f"\nUnexpected error: {e}")
        return
    finally:
        if negotiator is not None:
            await negotiator.close()
        await monitor.aclose()

    print("\n" + "=" * 50)
    print("Example completed!")


if __name__ == "__main__":
    asyncio.run(main())
