"""Unit tests for relay binary discovery and config generation."""

import yaml

from relaycast.domain.relay.relay_files import (
    CONFIG_HEADER,
    binary_name,
    build_relay_config,
    candidate_binary_paths,
    find_binary,
    remove_relay_config,
    write_relay_config,
)
from relaycast.schemas import RelayProcessConfig


class TestFindBinary:
    """Tests for binary discovery order."""

    def test_explicit_path_searched_first(self, tmp_path):
        candidates = candidate_binary_paths(tmp_path, "/opt/mediamtx/mediamtx")

        assert str(candidates[0]) == "/opt/mediamtx/mediamtx"
        assert candidates[1] == tmp_path / "bin" / binary_name()

    def test_finds_project_binary(self, tmp_path, relay_binary):
        assert find_binary(tmp_path) == relay_binary

    def test_explicit_path_wins(self, tmp_path, relay_binary):
        other = tmp_path / "custom" / "mediamtx"
        other.parent.mkdir()
        other.write_text("#!/bin/sh\n")
        other.chmod(0o755)

        assert find_binary(tmp_path, str(other)) == other

    def test_non_executable_file_is_skipped(self, tmp_path, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: None)
        monkeypatch.chdir(tmp_path)
        binary = tmp_path / "bin" / binary_name()
        binary.parent.mkdir()
        binary.write_text("not executable")
        binary.chmod(0o644)

        assert find_binary(tmp_path) is None


class TestRelayConfigFile:
    """Tests for the generated MediaMTX configuration."""

    def test_config_uses_ports(self):
        cfg = RelayProcessConfig(rtmp_port=2935, webrtc_port=9889, hls_port=9888, api_port=10997)

        data = build_relay_config(cfg, "127.0.0.1")

        assert data["rtmpAddress"] == ":2935"
        assert data["webrtcAddress"] == ":9889"
        assert data["hlsAddress"] == ":9888"
        assert data["apiAddress"] == "127.0.0.1:10997"
        assert data["api"] is True
        assert data["paths"] == {"all_others": {}}

    def test_write_and_remove(self, tmp_path):
        path = tmp_path / "data" / "mediamtx.yml"

        written = write_relay_config(path, RelayProcessConfig())

        content = written.read_text()
        assert content.startswith(CONFIG_HEADER)
        assert yaml.safe_load(content)["rtmpAddress"] == ":1935"

        remove_relay_config(path)
        assert not path.exists()

    def test_remove_missing_file_is_noop(self, tmp_path):
        remove_relay_config(tmp_path / "nope.yml")
        remove_relay_config(None)
