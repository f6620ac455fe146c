"""Agent CLI domain models."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

DEFAULT_VERSION_FLAG = "--version"
DEFAULT_VERSION_PATTERN = r"(\d+\.\d+\.\d+)"


class ExecutionEnvironment(str, Enum):
    """Execution context that produced a successful detection."""

    NATIVE = "native"
    WSL = "wsl"
    HAPI = "hapi"
    HAPPY = "happy"


class DetectionConfidence(str, Enum):
    VERIFIED = "verified"  # version probe ran to completion
    PRESENT = "present"  # located on disk or PATH, never ran
    ABSENT = "absent"


@dataclass(frozen=True)
class CommandSpec:
    """Specification for launching a program directly (no shell resolution)."""

    program: str
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None
    cwd: str | None = None


@dataclass(frozen=True)
class AgentDescriptor:
    """Identity of a CLI tool to detect."""

    id: str
    display_name: str
    command: str
    version_flag: str = DEFAULT_VERSION_FLAG
    version_pattern: str | None = DEFAULT_VERSION_PATTERN
    is_builtin: bool = True

    @property
    def version_command(self) -> str:
        return f"{self.command} {self.version_flag}".strip()

    def extract_version(self, output: str) -> str | None:
        """Pull a version string out of probe output, or None if absent."""
        if not self.version_pattern:
            return None
        match = re.search(self.version_pattern, output)
        if not match:
            return None
        return match.group(1) if match.groups() else match.group(0)


@dataclass(frozen=True)
class CustomAgent:
    """A user-defined agent supplied by the caller with a detection request."""

    id: str
    name: str
    command: str
    version_flag: str = DEFAULT_VERSION_FLAG
    version_pattern: str | None = DEFAULT_VERSION_PATTERN


@dataclass(frozen=True)
class BuiltinSource:
    """A built-in agent, optionally with a caller-supplied executable path."""

    agent: AgentDescriptor
    custom_path: str = ""

    @property
    def id(self) -> str:
        return self.agent.id

    def descriptor(self) -> AgentDescriptor:
        if not self.custom_path:
            return self.agent
        return AgentDescriptor(
            id=self.agent.id,
            display_name=self.agent.display_name,
            command=self.custom_path,
            version_flag=self.agent.version_flag,
            version_pattern=self.agent.version_pattern,
            is_builtin=True,
        )

    @property
    def reported_command(self) -> str:
        return self.agent.command


@dataclass(frozen=True)
class CustomSource:
    """A caller-defined agent."""

    agent: CustomAgent

    @property
    def id(self) -> str:
        return self.agent.id

    def descriptor(self) -> AgentDescriptor:
        return AgentDescriptor(
            id=self.agent.id,
            display_name=self.agent.name,
            command=self.agent.command,
            version_flag=self.agent.version_flag,
            version_pattern=self.agent.version_pattern,
            is_builtin=False,
        )

    @property
    def reported_command(self) -> str:
        return self.agent.command


AgentSource = BuiltinSource | CustomSource


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of detecting one agent CLI. Never mutated after construction."""

    id: str
    display_name: str
    command: str
    installed: bool
    is_builtin: bool
    version: str | None = None
    environment: ExecutionEnvironment | None = None
    timed_out: bool | None = None
    confidence: DetectionConfidence = DetectionConfidence.ABSENT
    detected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.installed and self.version is not None:
            raise ValueError("version must be absent when installed is False")
        if self.installed and self.timed_out is not None:
            raise ValueError("timed_out is only meaningful when installed is False")
        if self.installed and self.confidence is DetectionConfidence.ABSENT:
            raise ValueError("installed result needs a verified or present confidence")

    @classmethod
    def verified(
        cls,
        descriptor: AgentDescriptor,
        command: str,
        version: str | None,
        environment: ExecutionEnvironment = ExecutionEnvironment.NATIVE,
    ) -> DetectionResult:
        return cls(
            id=descriptor.id,
            display_name=descriptor.display_name,
            command=command,
            installed=True,
            is_builtin=descriptor.is_builtin,
            version=version,
            environment=environment,
            confidence=DetectionConfidence.VERIFIED,
        )

    @classmethod
    def present(
        cls,
        descriptor: AgentDescriptor,
        command: str,
        environment: ExecutionEnvironment = ExecutionEnvironment.NATIVE,
    ) -> DetectionResult:
        return cls(
            id=descriptor.id,
            display_name=descriptor.display_name,
            command=command,
            installed=True,
            is_builtin=descriptor.is_builtin,
            environment=environment,
            confidence=DetectionConfidence.PRESENT,
        )

    @classmethod
    def missing(
        cls,
        descriptor: AgentDescriptor,
        command: str,
        timed_out: bool = False,
    ) -> DetectionResult:
        return cls(
            id=descriptor.id,
            display_name=descriptor.display_name,
            command=command,
            installed=False,
            is_builtin=descriptor.is_builtin,
            timed_out=timed_out,
        )
