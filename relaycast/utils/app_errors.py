"""Application error types raised by domain code and mapped to HTTP responses."""

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class AppErrorCode(str, Enum):
    """Error codes returned in the `error.code` field of failure responses."""

    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"

    # Relay process
    E_RELAY_UNAVAILABLE = "E_RELAY_UNAVAILABLE"
    E_RELAY_NOT_RUNNING = "E_RELAY_NOT_RUNNING"
    E_RELAY_API_UNREACHABLE = "E_RELAY_API_UNREACHABLE"
    E_RELAY_SPAWN_FAILED = "E_RELAY_SPAWN_FAILED"
    E_RELAY_HEALTH_TIMEOUT = "E_RELAY_HEALTH_TIMEOUT"
    E_RELAY_BUSY = "E_RELAY_BUSY"

    def __str__(self) -> str:
        return self.value


class HttpStatusCode(IntEnum):
    BAD_REQUEST = 400
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503


class AppError(Exception):
    """
    Error carrying an API error code, a user-facing message and an HTTP status.

    The caller location is captured when the error is created so the exception
    handler can log where it was raised.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: HttpStatusCode | int = HttpStatusCode.BAD_REQUEST,
    ):
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]

        frame = inspect.currentframe()
        caller = frame.f_back if frame else None
        if caller is not None:
            module = caller.f_globals.get("__name__", caller.f_code.co_filename)
            self.caller_info = f"{module}:{caller.f_code.co_name}:{caller.f_lineno}"
        else:
            self.caller_info = "unknown"

        super().__init__(f"{self.errcode}: {errmesg}")
