from pydantic import BaseModel

from relaycast.config import config


def _csv(value: str | None) -> list[str]:
    return [x.strip() for x in (value or "").split(",") if x.strip()]


class AppEnvironConfig(BaseModel):
    DEBUG: bool = (config.get("DEBUG") or "false").strip().lower() == "true"

    # API server
    API_HOST: str = (config.get("API_HOST") or "0.0.0.0").strip()
    API_PORT: int = config.get_int("API_PORT", 3123)
    API_WORKERS: int = config.get_int("API_WORKERS", 1, maximum=64)
    API_CORS_ORIGINS: list[str] = _csv(config.get("API_CORS_ORIGINS")) or ["*"]

    # MediaMTX binary and generated config location
    MEDIAMTX_BINARY_PATH: str | None = (config.get("MEDIAMTX_BINARY_PATH") or "").strip() or None
    MEDIAMTX_DATA_DIR: str | None = (config.get("MEDIAMTX_DATA_DIR") or "").strip() or None

    # MediaMTX ports
    MEDIAMTX_RTMP_PORT: int = config.get_int("MEDIAMTX_RTMP_PORT", 1935)
    MEDIAMTX_WEBRTC_PORT: int = config.get_int("MEDIAMTX_WEBRTC_PORT", 8889)
    MEDIAMTX_HLS_PORT: int = config.get_int("MEDIAMTX_HLS_PORT", 8888)
    MEDIAMTX_API_PORT: int = config.get_int("MEDIAMTX_API_PORT", 9997)

    # Control API is reached on the loopback; playback URLs use the public host
    MEDIAMTX_API_HOST: str = (config.get("MEDIAMTX_API_HOST") or "127.0.0.1").strip()
    MEDIAMTX_PUBLIC_HOST: str = (config.get("MEDIAMTX_PUBLIC_HOST") or "localhost").strip()

    # Timeouts (seconds)
    MEDIAMTX_STARTUP_TIMEOUT: float = config.get_float("MEDIAMTX_STARTUP_TIMEOUT", 10.0)
    MEDIAMTX_STOP_TIMEOUT: float = config.get_float("MEDIAMTX_STOP_TIMEOUT", 5.0)
    MEDIAMTX_API_TIMEOUT: float = config.get_float("MEDIAMTX_API_TIMEOUT", 2.0)
    # 0 disables the periodic health probe
    MEDIAMTX_HEALTH_INTERVAL: float = config.get_float(
        "MEDIAMTX_HEALTH_INTERVAL", 10.0, allow_zero=True
    )


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
