"""Tests for config loading."""

from pathlib import Path

import pytest

from agentdeck.config import AppConfig, DetectionConfig, init_config, is_truthy_flag, load_config
from agentdeck.models.shell import ShellType


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("AGENTDECK_DATA_DIR", "AGENTDECK_DEBUG_CLI_DETECT", "AGENTDECK_ENV"):
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    def test_load_defaults(self):
        """Loading with no file should return defaults."""
        config = load_config(Path("/nonexistent/config.toml"))
        assert config.shell.shell_type == "system"
        assert config.detection.posix_timeout == 15.0
        assert config.detection.windows_timeout == 60.0
        assert config.detection.probe_timeout_cap == 10.0
        assert config.terminal.kill_grace_period == 3.0
        assert config.debug_cli_detect is False
        assert config.packaged is False

    def test_detect_log_path(self):
        config = AppConfig(data_dir="/var/lib/agentdeck")
        assert config.detect_log_path == Path("/var/lib/agentdeck/logs/cli-detect.log")

    def test_init_config(self, tmp_path):
        path = tmp_path / "config.toml"
        result = init_config(path)
        assert result == path
        assert path.exists()
        # Should be loadable
        config = load_config(path)
        assert config.terminal.default_cols == 80

    def test_file_values(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[shell]\nshell_type = "bash"\n\n[detection]\nposix_timeout = 5\n')
        config = load_config(path)
        assert config.shell.to_shell_config().shell_type is ShellType.BASH
        assert config.detection.posix_timeout == 5.0

    def test_env_overlay(self, monkeypatch):
        monkeypatch.setenv("AGENTDECK_DATA_DIR", "/tmp/deck")
        monkeypatch.setenv("AGENTDECK_DEBUG_CLI_DETECT", "TRUE")
        monkeypatch.setenv("AGENTDECK_ENV", "production")
        config = load_config(Path("/nonexistent/config.toml"))
        assert config.data_dir == "/tmp/deck"
        assert config.debug_cli_detect is True
        assert config.packaged is True


class TestHelpers:
    def test_truthy_flag(self):
        assert is_truthy_flag("1")
        assert is_truthy_flag("true")
        assert is_truthy_flag("True")
        assert not is_truthy_flag("yes")
        assert not is_truthy_flag("0")
        assert not is_truthy_flag(None)

    def test_timeout_for_platform(self):
        config = DetectionConfig()
        assert config.timeout_for("win32") == 60.0
        assert config.timeout_for("linux") == 15.0
        assert config.timeout_for("darwin") == 15.0
