"""Video streaming routes.

- GET  /video/status - relay status and playback URLs
- POST /video/start  - start the MediaMTX relay
- POST /video/stop   - stop the MediaMTX relay
- GET  /video/paths  - active publish paths
- GET  /video/config - relay configuration
"""

from fastapi import APIRouter, Depends
from loguru import logger

from relaycast.api.schemas.base import ApiOut
from relaycast.api.schemas.video import ConfigOut, PathsOut, StartOut, StopOut
from relaycast.domain.relay.supervisor import (
    BINARY_NOT_FOUND_MESSAGE,
    RelaySupervisor,
    get_relay_supervisor,
)
from relaycast.schemas import RelayStatus
from relaycast.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/video", tags=["video"])


@router.get("/status")
async def get_status(
    supervisor: RelaySupervisor = Depends(get_relay_supervisor),
) -> ApiOut[RelayStatus]:
    """Current video streaming status."""
    status = await supervisor.get_status()
    logger.debug("Video status requested: {}", status)
    return ApiOut[RelayStatus](results=status)


@router.post("/start")
async def start_server(
    supervisor: RelaySupervisor = Depends(get_relay_supervisor),
) -> ApiOut[StartOut]:
    """Start the relay. Idempotent while it is already running."""
    if not supervisor.is_binary_available():
        raise AppError(
            errcode=AppErrorCode.E_RELAY_UNAVAILABLE,
            errmesg=BINARY_NOT_FOUND_MESSAGE,
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )

    if supervisor.is_running():
        logger.info("MediaMTX server already running")
        status = await supervisor.get_status()
        return ApiOut[StartOut](
            results=StartOut(message="Server already running", **status.model_dump())
        )

    started = await supervisor.try_start()
    status = await supervisor.get_status()

    if not started:
        # Another request brought it up while this one waited
        logger.info("MediaMTX server already running")
        return ApiOut[StartOut](
            results=StartOut(message="Server already running", **status.model_dump())
        )

    logger.info("MediaMTX server started via API")
    return ApiOut[StartOut](results=StartOut(message="Server started", **status.model_dump()))


@router.post("/stop")
async def stop_server(
    supervisor: RelaySupervisor = Depends(get_relay_supervisor),
) -> ApiOut[StopOut]:
    """Stop the relay. Succeeds whether or not it was running."""
    if not supervisor.is_running():
        logger.info("MediaMTX server not running")
        await supervisor.stop()
        return ApiOut[StopOut](results=StopOut(message="Server not running"))

    await supervisor.stop()

    logger.info("MediaMTX server stopped via API")
    return ApiOut[StopOut](results=StopOut(message="Server stopped"))


@router.get("/paths")
async def get_paths(
    supervisor: RelaySupervisor = Depends(get_relay_supervisor),
) -> ApiOut[PathsOut]:
    """Active publish paths reported by the relay."""
    if not supervisor.is_running():
        raise AppError(
            errcode=AppErrorCode.E_RELAY_NOT_RUNNING,
            errmesg="MediaMTX server is not running",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )

    paths = await supervisor.get_active_paths()
    if paths is None:
        raise AppError(
            errcode=AppErrorCode.E_RELAY_API_UNREACHABLE,
            errmesg="Failed to communicate with MediaMTX API",
            status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
        )

    logger.debug("Active paths requested: count={}", paths.item_count)
    return ApiOut[PathsOut](results=PathsOut(paths=paths))


@router.get("/config")
async def get_config(
    supervisor: RelaySupervisor = Depends(get_relay_supervisor),
) -> ApiOut[ConfigOut]:
    """Static relay configuration."""
    return ApiOut[ConfigOut](results=ConfigOut(config=supervisor.get_config()))
