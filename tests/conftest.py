import asyncio
import os
import stat
import sys
from pathlib import Path

import httpx
import pytest

# Keep test runs independent of a developer's env.local
os.environ.update(
    {
        "LOGFIRE_ENABLE": "false",
        "MEDIAMTX_HEALTH_INTERVAL": "0",
    }
)

# Ensure the project root is on sys.path so `tools` resolves
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)


LIVE_PATHS = {
    "itemCount": 1,
    "pageCount": 1,
    "items": [
        {
            "name": "live/stream",
            "confName": "all_others",
            "source": {"type": "rtmpConn", "id": "conn-1"},
            "ready": True,
            "readyTime": "2025-01-01T00:00:00Z",
            "tracks": ["H264", "MPEG-4 Audio"],
            "bytesReceived": 1000,
            "bytesSent": 500,
            "readers": [{"type": "webRTCSession", "id": "reader-1"}],
        }
    ],
}

IDLE_PATHS = {"itemCount": 0, "pageCount": 0, "items": []}


class FakeProcess:
    """Stand-in for asyncio.subprocess.Process."""

    def __init__(self, *, exit_on_terminate: bool = True, returncode: int | None = None):
        self.exit_on_terminate = exit_on_terminate
        self.returncode = returncode
        self.stdout = None
        self.stderr = None
        self.terminate_calls = 0
        self.kill_calls = 0
        self._exited = asyncio.Event()
        if returncode is not None:
            self._exited.set()

    def terminate(self) -> None:
        self.terminate_calls += 1
        if self.exit_on_terminate:
            self.exit(0)

    def kill(self) -> None:
        self.kill_calls += 1
        self.exit(-9)

    def exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class FakeSpawner:
    """Replacement for asyncio.create_subprocess_exec that records calls."""

    def __init__(self, *processes: FakeProcess, error: OSError | None = None):
        self.processes = list(processes)
        self.error = error
        self.calls: list[tuple] = []
        self.spawned: list[FakeProcess] = []

    async def __call__(self, *args, **kwargs):
        self.calls.append(args)
        # Let concurrent callers interleave
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        process = self.processes.pop(0) if self.processes else FakeProcess()
        self.spawned.append(process)
        return process


class FakeRelayApi:
    """httpx.MockTransport handler emulating the MediaMTX control API."""

    def __init__(self, *, ready: bool = True, paths: dict | None = None, paths_status: int = 200):
        self.ready = ready
        self.paths = paths if paths is not None else IDLE_PATHS
        self.paths_status = paths_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/v3/config/global/get":
            return httpx.Response(200 if self.ready else 503, json={"api": True})
        if request.url.path == "/v3/paths/list":
            if self.paths_status != 200:
                return httpx.Response(self.paths_status, text="error")
            return httpx.Response(200, json=self.paths)
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)


@pytest.fixture
def relay_binary(tmp_path: Path) -> Path:
    binary = tmp_path / "bin" / "mediamtx"
    binary.parent.mkdir(parents=True)
    binary.write_text("#!/bin/sh\n")
    binary.chmod(binary.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return binary


@pytest.fixture
def relay_api() -> FakeRelayApi:
    return FakeRelayApi()


@pytest.fixture
def spawner(monkeypatch: pytest.MonkeyPatch) -> FakeSpawner:
    fake = FakeSpawner()
    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake)
    return fake
