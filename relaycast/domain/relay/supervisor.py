"""MediaMTX relay process supervisor.

Owns the relay process for this API instance: binary detection, generated
config, start/stop, readiness and health probes, and publish path listing.

Usage:
    from relaycast.domain.relay.supervisor import get_relay_supervisor

    supervisor = get_relay_supervisor()
    await supervisor.start()
    status = await supervisor.get_status()
    await supervisor.stop()
"""

from __future__ import annotations

import asyncio
import subprocess
from pathlib import Path

import httpx
from loguru import logger

from relaycast.app_config import get_app_environ_config
from relaycast.schemas import RelayProcessConfig, RelayProcessState, RelayStatus, StreamPathList
from relaycast.services.mediamtx_client import MediaMTXApiError, MediaMTXClient
from relaycast.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

from .relay_files import find_binary, is_executable, remove_relay_config, write_relay_config
from .relay_state_machine import RelayStateMachine

BINARY_NOT_FOUND_MESSAGE = "MediaMTX binary not found. Video streaming is not available."
PROJECT_ROOT = Path(__file__).resolve().parents[3]


class RelaySupervisor:
    """Supervises a single MediaMTX process.

    start() and stop() are serialized by one lock, so duplicate clicks or
    retried requests never spawn a second process. Read-only queries
    (is_running, get_status, get_active_paths) do not take the lock and work
    from one read of the current state.
    """

    def __init__(
        self,
        *,
        binary_path: Path | None = None,
        base_dir: Path = PROJECT_ROOT,
        data_dir: Path | None = None,
        config: RelayProcessConfig | None = None,
        api_host: str = "127.0.0.1",
        public_host: str = "localhost",
        startup_timeout: float = 10.0,
        stop_timeout: float = 5.0,
        api_timeout: float = 2.0,
        health_interval: float = 0.0,
        probe_interval: float = 0.25,
        api_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._binary_path = binary_path if binary_path is not None else find_binary(base_dir)
        self._data_dir = data_dir or base_dir / "data"
        self._config_path: Path | None = None

        cfg = config or RelayProcessConfig()
        enabled = self._binary_path is not None and is_executable(self._binary_path)
        self._config = cfg.model_copy(update={"enabled": enabled})

        self.api_host = api_host
        self.public_host = public_host
        self.startup_timeout = startup_timeout
        self.stop_timeout = stop_timeout
        self.api_timeout = api_timeout
        self.health_interval = health_interval
        self.probe_interval = probe_interval
        self._api_transport = api_transport

        self._state = RelayProcessState.STOPPED
        self._lock = asyncio.Lock()
        self._process: asyncio.subprocess.Process | None = None
        self._background: set[asyncio.Task] = set()
        self._last_error: str | None = None

        logger.info("RelaySupervisor initialized binary={}", self._binary_path)

    # ==================== STATE ====================

    @property
    def state(self) -> RelayProcessState:
        return self._state

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def api(self) -> MediaMTXClient:
        return MediaMTXClient(
            f"http://{self.api_host}:{self._config.api_port}",
            timeout=self.api_timeout,
            transport=self._api_transport,
        )

    def _transition(self, new_state: RelayProcessState) -> None:
        current = self._state
        if not RelayStateMachine.can_transition(current, new_state):
            raise AppError(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Invalid relay state transition: {current} -> {new_state}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            )
        self._state = new_state
        logger.info("MediaMTX state {} -> {}", current, new_state)

    def _mark_failed(self, reason: str) -> None:
        self._last_error = reason
        if RelayStateMachine.can_transition(self._state, RelayProcessState.FAILED):
            logger.error("MediaMTX failed: {}", reason)
            self._transition(RelayProcessState.FAILED)

    # ==================== QUERIES ====================

    def is_binary_available(self) -> bool:
        return self._binary_path is not None and is_executable(self._binary_path)

    def is_running(self) -> bool:
        return self._state == RelayProcessState.RUNNING

    def get_config(self) -> RelayProcessConfig:
        return self._config.model_copy()

    def update_config(self, **changes) -> RelayProcessConfig:
        """Replace config values. Only allowed while no process is alive."""
        if RelayStateMachine.is_active(self._state):
            raise AppError(
                errcode=AppErrorCode.E_RELAY_BUSY,
                errmesg="Cannot update configuration while server is running",
                status_code=HttpStatusCode.CONFLICT,
            )
        merged = {**self._config.model_dump(), **changes}
        self._config = RelayProcessConfig.model_validate(merged)
        return self.get_config()

    async def get_status(self) -> RelayStatus:
        from .status import RelayStatusService

        return await RelayStatusService(self).get_status()

    async def get_active_paths(self) -> StreamPathList | None:
        """Publish paths from the control API, or None when it cannot be reached."""
        if not self.is_running():
            return None
        try:
            return await self.api.list_paths()
        except MediaMTXApiError as e:
            logger.debug("Failed to get active paths from API: {}", e)
            return None

    # ==================== LIFECYCLE ====================

    async def start(self) -> RelayProcessConfig:
        """Start the relay, or return the current config when already running.

        Raises:
            AppError: E_RELAY_UNAVAILABLE (503) when the binary is missing,
                E_RELAY_SPAWN_FAILED / E_RELAY_HEALTH_TIMEOUT (500) when the
                process could not be brought up. The state is then FAILED,
                also when the call is cancelled half way.
        """
        await self.try_start()
        return self.get_config()

    async def try_start(self) -> bool:
        """Like start(), but tells whether this call brought the process up.

        Returns False when the relay was already running, including when a
        concurrent caller started it while this one waited for the lock.
        """
        if not self.is_binary_available():
            raise AppError(
                errcode=AppErrorCode.E_RELAY_UNAVAILABLE,
                errmesg=BINARY_NOT_FOUND_MESSAGE,
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            )

        async with self._lock:
            if self._state == RelayProcessState.RUNNING:
                logger.warning("MediaMTX server is already running")
                return False

            await self._recover_interrupted()
            # Leftovers of a failed attempt
            await self._terminate()

            self._last_error = None
            self._transition(RelayProcessState.STARTING)
            try:
                await self._launch()
            except BaseException as e:
                reason = e.errmesg if isinstance(e, AppError) else f"start interrupted: {e!r}"
                self._mark_failed(reason)
                await self._terminate()
                raise

            self._transition(RelayProcessState.RUNNING)
            process = self._process
            self._spawn(self._watch_exit(process))
            if self.health_interval > 0:
                self._spawn(self._health_loop(process))

            logger.info(
                "MediaMTX server started successfully rtmp={} webrtc={} hls={} api={}",
                self._config.rtmp_port,
                self._config.webrtc_port,
                self._config.hls_port,
                self._config.api_port,
            )
            return True

    async def _launch(self) -> None:
        try:
            self._config_path = write_relay_config(
                self._data_dir / "mediamtx.yml", self._config, self.api_host
            )
        except OSError as e:
            raise AppError(
                errcode=AppErrorCode.E_RELAY_SPAWN_FAILED,
                errmesg=f"Failed to write MediaMTX config: {e}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            ) from e

        logger.info(
            "Starting MediaMTX server binary={} config={} ports={}",
            self._binary_path,
            self._config_path,
            self._config.model_dump(),
        )

        try:
            process = await asyncio.create_subprocess_exec(
                str(self._binary_path),
                str(self._config_path),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise AppError(
                errcode=AppErrorCode.E_RELAY_SPAWN_FAILED,
                errmesg=f"Failed to spawn MediaMTX process: {e}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            ) from e

        self._process = process
        self._spawn(self._pump(process.stdout, "stdout"))
        self._spawn(self._pump(process.stderr, "stderr"))
        await self._wait_ready(process)

    async def _recover_interrupted(self) -> None:
        """Settle a state left behind by a start or stop that never finished."""
        if self._state == RelayProcessState.STARTING:
            self._mark_failed("previous start did not finish")
        elif self._state == RelayProcessState.STOPPING:
            await self._terminate()
            self._transition(RelayProcessState.STOPPED)

    async def stop(self) -> None:
        """Stop the relay. A no-op when it is not running."""
        async with self._lock:
            await self._recover_interrupted()
            if self._state != RelayProcessState.RUNNING:
                logger.debug("MediaMTX server is not running (state={})", self._state)
                # FAILED keeps its state; only a process left behind is reaped
                await self._terminate()
                return

            logger.info("Stopping MediaMTX server")
            self._transition(RelayProcessState.STOPPING)
            await self._terminate()
            self._transition(RelayProcessState.STOPPED)
            logger.info("MediaMTX server stopped")

    async def probe_health(self) -> bool:
        """Probe the control API once; a running relay that fails it becomes FAILED."""
        if self._state != RelayProcessState.RUNNING:
            return False

        process = self._process
        if process is None or process.returncode is not None:
            self._mark_failed("process is no longer alive")
            return False

        if await self.api.ping():
            return True

        if self._state == RelayProcessState.RUNNING and self._process is process:
            self._mark_failed("health probe failed")
        return False

    async def cleanup(self) -> None:
        """Stop the relay and remove the generated config file (application shutdown)."""
        await self.stop()
        remove_relay_config(self._config_path)
        self._config_path = None

    # ==================== INTERNALS ====================

    async def _wait_ready(self, process: asyncio.subprocess.Process) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.startup_timeout
        client = self.api

        while True:
            if process.returncode is not None:
                raise AppError(
                    errcode=AppErrorCode.E_RELAY_SPAWN_FAILED,
                    errmesg=f"MediaMTX process failed to start (exit code {process.returncode})",
                    status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
                )
            if await client.ping():
                return
            if loop.time() >= deadline:
                raise AppError(
                    errcode=AppErrorCode.E_RELAY_HEALTH_TIMEOUT,
                    errmesg=f"MediaMTX API did not respond within {self.startup_timeout:g}s",
                    status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
                )
            await asyncio.sleep(self.probe_interval)

    async def _terminate(self) -> None:
        """Terminate the current process (graceful, then forced) and stop helper tasks."""
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning("Force killing MediaMTX process")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            logger.info("MediaMTX process exited code={}", process.returncode)
        # Kept until reaped so an interrupted terminate can be resumed
        if self._process is process:
            self._process = None

        current = asyncio.current_task()
        tasks = [t for t in self._background if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _pump(self, stream: asyncio.StreamReader | None, name: str) -> None:
        if stream is None:
            return
        async for raw in stream:
            message = raw.decode(errors="replace").strip()
            if not message:
                continue
            if "ERR" in message or "error" in message:
                logger.error("MediaMTX {}: {}", name, message)
            else:
                logger.debug("MediaMTX {}: {}", name, message)

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        code = await process.wait()
        if self._process is process and self._state == RelayProcessState.RUNNING:
            self._mark_failed(f"process exited unexpectedly (code {code})")

    async def _health_loop(self, process: asyncio.subprocess.Process) -> None:
        while self._process is process and self._state == RelayProcessState.RUNNING:
            await asyncio.sleep(self.health_interval)
            await self.probe_health()


_relay_supervisor: RelaySupervisor | None = None


def get_relay_supervisor() -> RelaySupervisor:
    """Get the process-wide RelaySupervisor instance."""
    global _relay_supervisor
    if _relay_supervisor is None:
        cfg = get_app_environ_config()
        _relay_supervisor = RelaySupervisor(
            binary_path=find_binary(PROJECT_ROOT, cfg.MEDIAMTX_BINARY_PATH),
            data_dir=Path(cfg.MEDIAMTX_DATA_DIR) if cfg.MEDIAMTX_DATA_DIR else None,
            config=RelayProcessConfig(
                rtmp_port=cfg.MEDIAMTX_RTMP_PORT,
                webrtc_port=cfg.MEDIAMTX_WEBRTC_PORT,
                hls_port=cfg.MEDIAMTX_HLS_PORT,
                api_port=cfg.MEDIAMTX_API_PORT,
            ),
            api_host=cfg.MEDIAMTX_API_HOST,
            public_host=cfg.MEDIAMTX_PUBLIC_HOST,
            startup_timeout=cfg.MEDIAMTX_STARTUP_TIMEOUT,
            stop_timeout=cfg.MEDIAMTX_STOP_TIMEOUT,
            api_timeout=cfg.MEDIAMTX_API_TIMEOUT,
            health_interval=cfg.MEDIAMTX_HEALTH_INTERVAL,
        )
    return _relay_supervisor
