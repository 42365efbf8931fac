"""Relay binary discovery and generated configuration file."""

import os
import shutil
import sys
from pathlib import Path

import yaml
from loguru import logger

from relaycast.schemas import RelayProcessConfig

CONFIG_HEADER = (
    "###############################################\n"
    "# MediaMTX Configuration (auto-generated)\n"
    "###############################################\n"
)


def binary_name() -> str:
    return "mediamtx.exe" if sys.platform == "win32" else "mediamtx"


def candidate_binary_paths(base_dir: Path, explicit: str | None = None) -> list[Path]:
    """Locations searched for the relay binary, in priority order."""
    name = binary_name()
    cwd = Path.cwd()
    candidates = []
    if explicit:
        candidates.append(Path(explicit))
    candidates.extend(
        [
            base_dir / "bin" / name,
            cwd / "bin" / name,
            cwd / "apps" / "desktop-companion" / "bin" / name,
        ]
    )
    on_path = shutil.which(name)
    if on_path:
        candidates.append(Path(on_path))
    return candidates


def is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def find_binary(base_dir: Path, explicit: str | None = None) -> Path | None:
    candidates = candidate_binary_paths(base_dir, explicit)
    for path in candidates:
        if is_executable(path):
            logger.info("MediaMTX binary found: {}", path)
            return path

    logger.warning(
        "MediaMTX binary not found - video streaming disabled. searched={}",
        [str(p) for p in candidates],
    )
    return None


def build_relay_config(cfg: RelayProcessConfig, api_host: str = "127.0.0.1") -> dict:
    """MediaMTX settings for RTMP ingest, WebRTC/HLS playback and the control API."""
    return {
        "logLevel": "info",
        "logDestinations": ["stdout"],
        "rtmp": True,
        "rtmpAddress": f":{cfg.rtmp_port}",
        "webrtc": True,
        "webrtcAddress": f":{cfg.webrtc_port}",
        "webrtcLocalUDPAddress": f":{cfg.webrtc_port}",
        "webrtcLocalTCPAddress": f":{cfg.webrtc_port}",
        "hls": True,
        "hlsAddress": f":{cfg.hls_port}",
        "api": True,
        "apiAddress": f"{api_host}:{cfg.api_port}",
        # Accept any publish path
        "paths": {"all_others": {}},
    }


def write_relay_config(path: Path, cfg: RelayProcessConfig, api_host: str = "127.0.0.1") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    content = yaml.safe_dump(build_relay_config(cfg, api_host), sort_keys=False)
    path.write_text(CONFIG_HEADER + "\n" + content, encoding="utf-8")
    logger.debug("MediaMTX config file generated: {}", path)
    return path


def remove_relay_config(path: Path | None) -> None:
    if path is None or not path.exists():
        return
    try:
        path.unlink()
        logger.debug("Removed MediaMTX config file {}", path)
    except OSError as e:
        logger.warning("Failed to remove config file {}: {}", path, e)
