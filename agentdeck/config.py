"""Configuration loading: TOML file + environment variable overlay."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from agentdeck.models.shell import ShellConfig, ShellType

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]


DEFAULT_CONFIG_DIR = Path.home() / ".config" / "agentdeck"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "config.toml"

CLI_DETECT_DEBUG_ENV = "AGENTDECK_DEBUG_CLI_DETECT"
RUNTIME_ENV = "AGENTDECK_ENV"
DATA_DIR_ENV = "AGENTDECK_DATA_DIR"


def _default_socket_path() -> str:
    """Return default socket path using XDG_RUNTIME_DIR or /tmp fallback."""
    runtime = os.environ.get("XDG_RUNTIME_DIR")
    if runtime:
        return str(Path(runtime) / "agentdeck.sock")
    uid = os.getuid() if hasattr(os, "getuid") else os.getpid()
    return f"/tmp/agentdeck-{uid}.sock"


def is_truthy_flag(value: str | None) -> bool:
    """Boolean-ish env flag: only "1" or "true" (any case) enable it."""
    if not value:
        return False
    return value == "1" or value.lower() == "true"


DEFAULT_CONFIG_TOML = """\
[general]
data_dir = "~/.local/share/agentdeck"

[shell]
# system, login, powershell7, powershell, cmd, bash, zsh, sh, custom
shell_type = "system"
custom_path = ""
custom_args = []

[detection]
posix_timeout = 15.0
windows_timeout = 60.0
probe_timeout_cap = 10.0

[terminal]
default_cols = 80
default_rows = 24
kill_grace_period = 3.0
term = "xterm-256color"

[workspace]
temp_root = "~/agentdeck/temporary"

[server]
# socket_path defaults to XDG_RUNTIME_DIR or /tmp
"""


@dataclass
class ShellSettings:
    shell_type: str = "system"
    custom_path: str = ""
    custom_args: list[str] = field(default_factory=list)

    def to_shell_config(self) -> ShellConfig:
        return ShellConfig(
            shell_type=ShellType(self.shell_type),
            custom_path=self.custom_path,
            custom_args=tuple(self.custom_args),
        )


@dataclass
class DetectionConfig:
    posix_timeout: float = 15.0
    windows_timeout: float = 60.0  # PowerShell/WSL start slowly
    probe_timeout_cap: float = 10.0

    def timeout_for(self, platform: str | None = None) -> float:
        platform = platform or sys.platform
        return self.windows_timeout if platform == "win32" else self.posix_timeout


@dataclass
class TerminalConfig:
    default_cols: int = 80
    default_rows: int = 24
    kill_grace_period: float = 3.0
    term: str = "xterm-256color"


@dataclass
class WorkspaceConfig:
    temp_root: str = "~/agentdeck/temporary"

    @property
    def resolved_temp_root(self) -> Path:
        return Path(self.temp_root).expanduser()


@dataclass
class ServerConfig:
    socket_path: str = ""

    @property
    def resolved_socket_path(self) -> str:
        return self.socket_path or _default_socket_path()


@dataclass
class AppConfig:
    data_dir: str = "~/.local/share/agentdeck"
    shell: ShellSettings = field(default_factory=ShellSettings)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    terminal: TerminalConfig = field(default_factory=TerminalConfig)
    workspace: WorkspaceConfig = field(default_factory=WorkspaceConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    debug_cli_detect: bool = False
    packaged: bool = False
    config_path: Path = DEFAULT_CONFIG_PATH

    @property
    def resolved_data_dir(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def detect_log_path(self) -> Path:
        return self.resolved_data_dir / "logs" / "cli-detect.log"


def _env_overlay(config: AppConfig) -> None:
    """Override config values with environment variables where applicable."""
    if data_dir := os.environ.get(DATA_DIR_ENV):
        config.data_dir = data_dir
    config.debug_cli_detect = is_truthy_flag(os.environ.get(CLI_DETECT_DEBUG_ENV))
    config.packaged = os.environ.get(RUNTIME_ENV, "").lower() == "production"


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file with env var overlay."""
    path = config_path or DEFAULT_CONFIG_PATH

    if path.exists():
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    else:
        raw = tomllib.loads(DEFAULT_CONFIG_TOML)

    general = raw.get("general", {})
    shell_raw = raw.get("shell", {})
    detection_raw = raw.get("detection", {})
    terminal_raw = raw.get("terminal", {})
    workspace_raw = raw.get("workspace", {})
    server_raw = raw.get("server", {})

    config = AppConfig(
        data_dir=general.get("data_dir", "~/.local/share/agentdeck"),
        shell=ShellSettings(
            shell_type=shell_raw.get("shell_type", "system"),
            custom_path=shell_raw.get("custom_path", ""),
            custom_args=list(shell_raw.get("custom_args", [])),
        ),
        detection=DetectionConfig(
            posix_timeout=float(detection_raw.get("posix_timeout", 15.0)),
            windows_timeout=float(detection_raw.get("windows_timeout", 60.0)),
            probe_timeout_cap=float(detection_raw.get("probe_timeout_cap", 10.0)),
        ),
        terminal=TerminalConfig(
            default_cols=terminal_raw.get("default_cols", 80),
            default_rows=terminal_raw.get("default_rows", 24),
            kill_grace_period=float(terminal_raw.get("kill_grace_period", 3.0)),
            term=terminal_raw.get("term", "xterm-256color"),
        ),
        workspace=WorkspaceConfig(
            temp_root=workspace_raw.get("temp_root", "~/agentdeck/temporary"),
        ),
        server=ServerConfig(
            socket_path=server_raw.get("socket_path", ""),
        ),
        config_path=path,
    )

    _env_overlay(config)
    return config


def init_config(config_path: Path | None = None) -> Path:
    """Create default config file."""
    path = config_path or DEFAULT_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONFIG_TOML)
    return path
