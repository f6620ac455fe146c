"""Shell configuration and resolved execution context models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class ShellType(str, Enum):
    SYSTEM = "system"
    LOGIN = "login"
    POWERSHELL7 = "powershell7"
    POWERSHELL = "powershell"
    CMD = "cmd"
    BASH = "bash"
    ZSH = "zsh"
    SH = "sh"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ShellConfig:
    """Logical shell selection, as chosen by the user or a caller."""

    shell_type: ShellType = ShellType.SYSTEM
    custom_path: str = ""
    custom_args: tuple[str, ...] = ()
    platform: str | None = None  # overrides sys.platform when set

    @classmethod
    def from_dict(cls, data: Mapping | None) -> ShellConfig:
        if not data:
            return cls()
        return cls(
            shell_type=ShellType(data.get("shell_type", "system")),
            custom_path=data.get("custom_path", "") or "",
            custom_args=tuple(data.get("custom_args", ()) or ()),
            platform=data.get("platform"),
        )


@dataclass(frozen=True)
class ShellContext:
    """A concrete executable + argv prefix + environment to run commands in."""

    executable_path: str
    argv_prefix: tuple[str, ...] = ()
    environment: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        env = dict(self.environment)
        env.setdefault("PATH", "")
        object.__setattr__(self, "argv_prefix", tuple(self.argv_prefix))
        object.__setattr__(self, "environment", MappingProxyType(env))

    @property
    def path(self) -> str:
        return self.environment["PATH"]

    def argv_for(self, command_line: str) -> list[str]:
        """Full argv to run a command line through this shell."""
        return [self.executable_path, *self.argv_prefix, command_line]

    def equivalent(self, other: ShellContext) -> bool:
        """Behavioral equivalence: same executable, argv prefix and PATH."""
        return (
            self.executable_path == other.executable_path
            and self.argv_prefix == other.argv_prefix
            and self.path == other.path
        )

    def with_env(self, extra: Mapping[str, str] | None) -> ShellContext:
        if not extra:
            return self
        env = dict(self.environment)
        env.update(extra)
        return ShellContext(self.executable_path, self.argv_prefix, env)


@dataclass(frozen=True)
class ShellInfo:
    """An entry in the list of shells available on this machine."""

    id: str
    name: str
    path: str
    available: bool
    is_wsl: bool = False
