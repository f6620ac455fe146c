"""Shell resolution: logical shell config -> executable, argv prefix, environment."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from collections.abc import Callable, Mapping
from pathlib import Path, PureWindowsPath

from agentdeck.models.shell import ShellConfig, ShellContext, ShellInfo, ShellType

logger = logging.getLogger(__name__)

POWERSHELL7_PATH = r"C:\Program Files\PowerShell\7\pwsh.exe"
WINDOWS_POWERSHELL = "powershell.exe"
WINDOWS_CMD = "cmd.exe"
GIT_BASH_PATH = r"C:\Program Files\Git\bin\bash.exe"
WSL_PATH = r"C:\Windows\System32\wsl.exe"

POSIX_FALLBACK_SHELLS = ("/bin/zsh", "/bin/bash", "/bin/sh")

_POSIX_NAMED = {
    ShellType.ZSH: ("/bin/zsh", "/usr/bin/zsh", "/usr/local/bin/zsh", "/opt/homebrew/bin/zsh"),
    ShellType.BASH: ("/bin/bash", "/usr/bin/bash", "/usr/local/bin/bash", "/opt/homebrew/bin/bash"),
    ShellType.SH: ("/bin/sh", "/usr/bin/sh"),
}

# Relative to $HOME; version managers and user-level package managers.
_POSIX_TOOL_DIRS = (
    ".local/bin",
    ".bun/bin",
    ".volta/bin",
    ".cargo/bin",
    ".npm-global/bin",
    ".nvm/current/bin",
    ".fnm/aliases/default/bin",
    ".asdf/shims",
    ".local/share/mise/shims",
    ".vfox/shims",
)
_POSIX_SYSTEM_TOOL_DIRS = ("/opt/homebrew/bin", "/usr/local/bin")


def _is_windows(platform: str) -> bool:
    return platform == "win32"


def _path_delimiter(platform: str) -> str:
    return ";" if _is_windows(platform) else ":"


def _find_path_key(environ: Mapping[str, str]) -> str | None:
    for key in environ:
        if key.upper() == "PATH":
            return key
    return None


def build_enhanced_path(
    base_path: str,
    platform: str | None = None,
    home: str | None = None,
    environ: Mapping[str, str] | None = None,
    exists: Callable[[str], bool] = os.path.isdir,
) -> str:
    """Merge the inherited PATH with well-known tool-manager directories.

    Inherited entries keep their order and come first; every entry appears
    once (case-insensitively on Windows). Extra directories that do not
    exist are skipped.
    """
    platform = platform or sys.platform
    environ = os.environ if environ is None else environ
    home = home or environ.get("HOME") or environ.get("USERPROFILE") or str(Path.home())
    delimiter = _path_delimiter(platform)

    extras: list[str] = []
    if _is_windows(platform):
        appdata = environ.get("APPDATA", "")
        localappdata = environ.get("LOCALAPPDATA", "")
        userprofile = environ.get("USERPROFILE", home)
        if appdata:
            extras.append(str(PureWindowsPath(appdata, "npm")))
        if localappdata:
            extras.append(str(PureWindowsPath(localappdata, "Programs")))
        extras.extend(
            str(PureWindowsPath(userprofile, *rel))
            for rel in ((".bun", "bin"), (".volta", "bin"), ("scoop", "shims"))
        )
    else:
        extras.extend(_POSIX_SYSTEM_TOOL_DIRS)
        extras.extend(str(Path(home) / rel) for rel in _POSIX_TOOL_DIRS)
        nvm_versions = Path(home) / ".nvm" / "versions" / "node"
        if nvm_versions.is_dir():
            extras.extend(str(p / "bin") for p in sorted(nvm_versions.iterdir(), reverse=True))

    def norm(entry: str) -> str:
        return entry.lower() if _is_windows(platform) else entry

    merged: list[str] = []
    seen: set[str] = set()
    for entry in base_path.split(delimiter):
        entry = entry.strip()
        if entry and norm(entry) not in seen:
            seen.add(norm(entry))
            merged.append(entry)
    for entry in extras:
        if norm(entry) not in seen and exists(entry):
            seen.add(norm(entry))
            merged.append(entry)
    return delimiter.join(merged)


def _quote(arg: str) -> str:
    return '"' + arg.replace('"', '\\"') + '"'


def wrap_login_command(context: ShellContext, command: str) -> str:
    """Single command string running `command` after the shell profile loads.

    The shell path and every argument are double-quoted so install paths
    with spaces survive a trip through a host shell.
    """
    parts = [_quote(context.executable_path)]
    parts.extend(_quote(arg) for arg in context.argv_prefix)
    parts.append(_quote(command))
    return " ".join(parts)


def login_argv(context: ShellContext, command: str) -> list[str]:
    """Argv form of wrap_login_command, for exec without a host shell."""
    return context.argv_for(command)


class ShellResolver:
    """Resolves ShellConfig into a concrete ShellContext.

    Never raises: anything unresolvable falls back to the platform default.
    Filesystem and environment access are injectable for tests.
    """

    def __init__(
        self,
        platform: str | None = None,
        environ: Mapping[str, str] | None = None,
        exists: Callable[[str], bool] = os.path.exists,
        which: Callable[[str], str | None] = shutil.which,
        home: str | None = None,
    ) -> None:
        self.platform = platform or sys.platform
        self._environ = dict(os.environ if environ is None else environ)
        self._exists = exists
        self._which = which
        self._home = home

    # --- shell selection ---

    def default_shell(self, platform: str | None = None) -> str:
        """The OS default shell executable."""
        platform = platform or self.platform
        if _is_windows(platform):
            if self._exists(POWERSHELL7_PATH):
                return POWERSHELL7_PATH
            return WINDOWS_POWERSHELL

        shell = self._environ.get("SHELL")
        if shell:
            return shell
        for candidate in POSIX_FALLBACK_SHELLS:
            if self._exists(candidate):
                return candidate
        return "/bin/sh"

    def find_login_shell(self, platform: str | None = None) -> tuple[str, tuple[str, ...]]:
        """Shell + args that run a command after the user's profile loads."""
        platform = platform or self.platform
        if _is_windows(platform):
            return WINDOWS_CMD, ("/d", "/s", "/c")
        return self.default_shell(platform), ("-l", "-c")

    def _command_args(self, executable: str, platform: str) -> tuple[str, ...]:
        name = PureWindowsPath(executable).name.lower() if _is_windows(platform) else Path(executable).name
        if name in ("pwsh.exe", "powershell.exe", "pwsh", "powershell"):
            return ("-NoLogo", "-Command")
        if name == "cmd.exe":
            return ("/d", "/s", "/c")
        if name == "wsl.exe":
            return ("-e", "sh", "-c")
        return ("-c",)

    def _interactive_args(self, executable: str, platform: str) -> tuple[str, ...]:
        name = PureWindowsPath(executable).name.lower() if _is_windows(platform) else Path(executable).name
        if name in ("pwsh.exe", "powershell.exe", "pwsh", "powershell"):
            return ("-NoLogo",)
        if name in ("cmd.exe", "wsl.exe"):
            return ()
        return ("-l",)

    def _named_shell(self, shell_type: ShellType, platform: str) -> str | None:
        if _is_windows(platform):
            if shell_type is ShellType.POWERSHELL7:
                return POWERSHELL7_PATH if self._exists(POWERSHELL7_PATH) else None
            if shell_type is ShellType.POWERSHELL:
                return WINDOWS_POWERSHELL
            if shell_type is ShellType.CMD:
                return WINDOWS_CMD
            if shell_type is ShellType.BASH:
                return GIT_BASH_PATH if self._exists(GIT_BASH_PATH) else None
            return None

        for candidate in _POSIX_NAMED.get(shell_type, ()):
            if self._exists(candidate):
                return candidate
        if shell_type in (ShellType.POWERSHELL7, ShellType.POWERSHELL):
            return self._which("pwsh")
        if shell_type in _POSIX_NAMED:
            return self._which(shell_type.value)
        return None

    def _custom_shell(self, config: ShellConfig) -> str | None:
        path = config.custom_path.strip()
        if not path:
            return None
        if self._exists(path):
            return path
        return self._which(path)

    def _select(self, config: ShellConfig, platform: str) -> tuple[str, tuple[str, ...] | None]:
        """Pick the executable; explicit args are returned for custom shells."""
        if config.shell_type is ShellType.LOGIN:
            shell, args = self.find_login_shell(platform)
            return shell, args
        if config.shell_type is ShellType.CUSTOM:
            custom = self._custom_shell(config)
            if custom:
                return custom, tuple(config.custom_args) if config.custom_args else None
            logger.warning("Custom shell %r not found, using default", config.custom_path)
            return self.default_shell(platform), None
        if config.shell_type is ShellType.SYSTEM:
            return self.default_shell(platform), None

        named = self._named_shell(config.shell_type, platform)
        if named:
            return named, None
        logger.debug("Shell %s unavailable, using default", config.shell_type.value)
        return self.default_shell(platform), None

    # --- environment ---

    def build_enhanced_path(self, platform: str | None = None) -> str:
        platform = platform or self.platform
        key = _find_path_key(self._environ)
        base = self._environ.get(key, "") if key else ""
        return build_enhanced_path(
            base,
            platform=platform,
            home=self._home,
            environ=self._environ,
            exists=os.path.isdir,
        )

    def environment_for_command(
        self,
        extra: Mapping[str, str] | None = None,
        platform: str | None = None,
    ) -> dict[str, str]:
        """Inherited environment with a reconstructed PATH (and extras)."""
        env = dict(self._environ)
        key = _find_path_key(env)
        if key:
            del env[key]
        env["PATH"] = self.build_enhanced_path(platform)
        if extra:
            env.update(extra)
        return env

    # --- public API ---

    def resolve(self, config: ShellConfig | None = None) -> ShellContext:
        """Resolve a config into the context used to run one-shot command lines."""
        config = config or ShellConfig()
        platform = config.platform or self.platform
        executable, args = self._select(config, platform)
        if args is None:
            args = self._command_args(executable, platform)
        return ShellContext(
            executable_path=executable,
            argv_prefix=args,
            environment=self.environment_for_command(platform=platform),
        )

    def resolve_interactive(self, config: ShellConfig | None = None) -> ShellContext:
        """Resolve a config into the context used to start an interactive terminal."""
        config = config or ShellConfig()
        platform = config.platform or self.platform
        executable, args = self._select(config, platform)
        if config.shell_type is ShellType.LOGIN or args is None:
            args = self._interactive_args(executable, platform)
        return ShellContext(
            executable_path=executable,
            argv_prefix=args,
            environment=self.environment_for_command(platform=platform),
        )

    def resolve_for_command(self, config: ShellConfig | None = None) -> tuple[str, list[str]]:
        """(shell, exec_args) pair as exposed to the surrounding application."""
        context = self.resolve(config)
        return context.executable_path, list(context.argv_prefix)

    def detect_shells(self, platform: str | None = None) -> list[ShellInfo]:
        """List the shells a user could pick on this machine."""
        platform = platform or self.platform
        if _is_windows(platform):
            candidates = [
                ("powershell7", "PowerShell 7", POWERSHELL7_PATH, False),
                ("powershell", "Windows PowerShell", WINDOWS_POWERSHELL, False),
                ("cmd", "Command Prompt", WINDOWS_CMD, False),
                ("gitbash", "Git Bash", GIT_BASH_PATH, False),
                ("wsl", "WSL", WSL_PATH, True),
            ]
            shells = []
            for shell_id, name, path, is_wsl in candidates:
                # powershell.exe and cmd.exe always ship with Windows
                available = path in (WINDOWS_POWERSHELL, WINDOWS_CMD) or self._exists(path)
                shells.append(ShellInfo(id=shell_id, name=name, path=path, available=available, is_wsl=is_wsl))
            return shells

        shells = []
        for shell_id, name in (("zsh", "Zsh"), ("bash", "Bash"), ("sh", "sh")):
            path = self._named_shell(ShellType(shell_id), platform)
            shells.append(
                ShellInfo(id=shell_id, name=name, path=path or f"/bin/{shell_id}", available=bool(path))
            )
        fish = self._which("fish")
        shells.append(ShellInfo(id="fish", name="Fish", path=fish or "fish", available=bool(fish)))
        return shells
