import inspect
import sys
from functools import lru_cache
from importlib import import_module
from os import environ
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from relaycast.utils.app_errors import AppErrorCode

E_INTERNAL = AppErrorCode.E_INTERNAL_ERROR.value
E_INVALID_PARAMS = AppErrorCode.E_INVALID_REQUEST.value


def format_error(ex: BaseException) -> str:
    from traceback import TracebackException

    return "".join(TracebackException.from_exception(ex).format())


class ApiResponse(BaseModel):
    version: str | None = Field(default_factory=lambda: environ.get("BUILD_COMMIT", "dev"))


class ApiSuccess(ApiResponse):
    success: Literal[True] = True
    results: Any = "OK"


class ApiError(BaseModel):
    code: str = E_INTERNAL
    message: str = "We are sorry, an error occurred."
    resid: str = Field(default_factory=lambda: uuid4().hex[:10])


class ApiFailure(ApiResponse):
    success: Literal[False] = False
    error: ApiError = Field(default_factory=ApiError)


def api_failure(errcode: str | None = None, errmesg: str | None = None, *, trace: Any = None) -> ApiFailure:
    """
    Build a failure envelope and log it with the caller location.

    Exceptions are never turned into the message here: stack traces stay in the
    log and the client only sees the message it is given.
    """
    failure = ApiFailure(
        error=ApiError(
            code=errcode or E_INTERNAL,
            message=errmesg or ApiError.model_fields["message"].default,
        )
    )

    caller_frame = inspect.stack()[1]
    module = inspect.getmodule(caller_frame.frame)
    module_name = module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
    caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    logger.warning(
        f"{failure.error.code} {failure.error.resid}\n{failure.error.message} "
        f"caller={caller_info} trace={trace}"
    )

    return failure


def make_response(results, *, status_code: int | None = None) -> ORJSONResponse:
    if isinstance(results, Exception):
        logger.error("Unhandled error: {}", format_error(results))
        response = api_failure()
        if status_code is None:
            status_code = 500
    elif isinstance(results, ApiFailure):
        response = results
        if status_code is None:
            status_code = 500 if results.error.code == E_INTERNAL else 400
    else:
        response = results
        if status_code is None:
            status_code = 200

    return ORJSONResponse(
        status_code=status_code,
        content=response.model_dump(by_alias=True) if hasattr(response, "model_dump") else response,
    )


def load_routes(app: FastAPI, prefix: str):
    """Include the `router` of every module under `relaycast/api/routers`."""
    from relaycast.config import config

    disabled_routes = [x.strip() for x in (config.get("API_DISABLED") or "").split(",") if x.strip()]
    logger.debug("disabled routes: {}", disabled_routes)

    folder = Path(__file__).parent / "routers"
    for x in sorted(folder.rglob("*.py")):
        if x.name == "__init__.py":
            continue

        relative_path = x.relative_to(folder).with_suffix("")
        name = "relaycast.api.routers." + ".".join(relative_path.parts)
        if any(f".{disabled}" in name for disabled in disabled_routes):
            logger.warning("disabled route module {}", name)
            continue

        try:
            module = import_module(name)
        except ImportError as e:
            logger.warning("Failed to import {}: {}", name, e)
            continue

        if hasattr(module, "router"):
            app.include_router(module.router, prefix=prefix)
            logger.info("Added routes in {}", name)

    for route_info in get_all_routes_info(app):
        methods = ",".join(sorted(route_info["methods"]))
        logger.info("Loaded route: {:<12} {:<60} {}", methods, route_info["path"], route_info["endpoint"])


def get_all_routes_info(app: FastAPI):
    routes_info = []

    for route in app.routes:
        if hasattr(route, "methods"):
            endpoint_name = route.endpoint.__name__ if hasattr(route.endpoint, "__name__") else str(route.endpoint)
            routes_info.append(
                {
                    "methods": sorted(route.methods),
                    "path": route.path,
                    "name": route.name,
                    "endpoint": endpoint_name,
                }
            )

    return routes_info


@lru_cache
def get_worker_info():
    project_root = Path(__file__).parent.parent.parent
    worker_name = environ.get("WORKER_NAME", project_root.name)

    parts = environ.get("BUILD_COMMIT", "").split("-")
    commit_id = parts[1] if len(parts) > 1 else "dev"

    return worker_name, commit_id, uuid4().hex[:8]


def init_logger():
    import logging

    from relaycast.app_config import get_app_environ_config

    # aiortc and aioice are chatty at INFO
    for name in ("aioice", "aiortc", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.remove()

    worker_name, commit_id, _ = get_worker_info()

    if get_app_environ_config().DEBUG:
        logger_level = "DEBUG"
        logger_format = (
            f"<yellow>{worker_name}:{commit_id}</yellow> | "
            "<green>{time:MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )
    else:
        logger_level = "INFO"
        logger_format = (
            f"{worker_name}:{commit_id} | "
            "{time:MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{name}:{function}:{line} | "
            "{message}"
        )
    logger.add(sys.stderr, level=logger_level, format=logger_format)
