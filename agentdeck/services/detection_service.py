"""Agent CLI detection: version probe, presence probe fallback, caching."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import sys
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from agentdeck.config import DetectionConfig
from agentdeck.errors import AgentDeckError, CommandTimeout
from agentdeck.infra.agents.registry import build_sources, resolve_source
from agentdeck.infra.ansi import first_line_preview
from agentdeck.infra.command_runner import CommandRunner
from agentdeck.infra.detect_log import DetectionLog
from agentdeck.models.agent import AgentDescriptor, AgentSource, CustomAgent, DetectionResult

logger = logging.getLogger(__name__)

_PATH_PREVIEW_ENTRIES = 8
_DRIVE_LETTER = re.compile(r"^[a-zA-Z]:")


def extract_executable(command: str) -> str:
    """First token of a command line; a leading quoted path is kept whole."""
    trimmed = command.strip()
    if not trimmed:
        return ""
    quote = trimmed[0]
    if quote in ('"', "'"):
        end = trimmed.find(quote, 1)
        if end > 1:
            return trimmed[1:end]
    parts = trimmed.split(maxsplit=1)
    return parts[0]


def is_path_like(command: str) -> bool:
    return (
        "/" in command
        or "\\" in command
        or bool(_DRIVE_LETTER.match(command))
        or command.startswith(".")
    )


@dataclass(frozen=True)
class _CacheEntry:
    result: DetectionResult
    command: str
    captured_at: datetime


class CliAgentDetector:
    """Determines install status and version of agent CLIs.

    Results are cached per agent id for the lifetime of the instance and only
    dropped by invalidate() or a forced refresh. A probe only writes its
    result back while it is still the registered in-flight probe for its id,
    so probes started before an invalidation can never repopulate the cache.
    """

    def __init__(
        self,
        runner: CommandRunner,
        detect_log: DetectionLog,
        config: DetectionConfig | None = None,
        platform: str | None = None,
        packaged: bool = False,
        path_exists: Callable[[str], bool] = os.path.exists,
    ) -> None:
        self._runner = runner
        self._log = detect_log
        self._config = config or DetectionConfig()
        self._platform = platform or sys.platform
        self._packaged = packaged
        self._path_exists = path_exists
        self._cache: dict[str, _CacheEntry] = {}
        self._inflight: dict[str, tuple[str, asyncio.Future[DetectionResult]]] = {}

    @property
    def timeout(self) -> float:
        return self._config.timeout_for(self._platform)

    @property
    def probe_timeout(self) -> float:
        return min(self.timeout, self._config.probe_timeout_cap)

    # --- cache ---

    def invalidate(self, agent_id: str | None = None) -> None:
        """Drop one cached result, or all of them when agent_id is None."""
        if agent_id is None:
            self._cache.clear()
            self._inflight.clear()
            return
        self._cache.pop(agent_id, None)
        self._inflight.pop(agent_id, None)

    def cached(self, agent_id: str) -> DetectionResult | None:
        entry = self._cache.get(agent_id)
        return entry.result if entry else None

    # --- public API ---

    async def detect_all(
        self,
        custom_agents: Iterable[CustomAgent] = (),
        force_refresh: bool = False,
        custom_paths: Mapping[str, str] | None = None,
    ) -> list[DetectionResult]:
        """Detect every built-in plus the given custom agents, concurrently."""
        sources = build_sources(custom_agents, custom_paths)
        if force_refresh:
            self.invalidate()

        outcomes = await asyncio.gather(
            *(self._detect_cached(source, force_refresh=False) for source in sources),
            return_exceptions=True,
        )

        results: list[DetectionResult] = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error("Detection of %s failed unexpectedly: %r", source.id, outcome)
                descriptor = source.descriptor()
                outcome = DetectionResult.missing(descriptor, source.reported_command)
            results.append(outcome)
        return results

    async def detect_one(
        self,
        agent_id: str,
        custom_agent: CustomAgent | None = None,
        custom_path: str = "",
        force_refresh: bool = False,
    ) -> DetectionResult:
        """Detect a single agent by id (built-in, or the supplied custom agent)."""
        self._log.debug(
            "Detect one CLI request received",
            {
                "agentId": agent_id,
                "hasCustomAgent": custom_agent is not None,
                "hasCustomPath": bool(custom_path),
                "customPath": custom_path,
            },
        )
        source = resolve_source(agent_id, custom_agent, custom_path)
        if source is None:
            unknown = AgentDescriptor(id=agent_id, display_name=agent_id, command=agent_id, is_builtin=False)
            return DetectionResult.missing(unknown, agent_id)
        return await self._detect_cached(source, force_refresh=force_refresh)

    # --- internals ---

    async def _detect_cached(self, source: AgentSource, force_refresh: bool) -> DetectionResult:
        descriptor = source.descriptor()
        if force_refresh:
            self.invalidate(source.id)
        else:
            entry = self._cache.get(source.id)
            if entry and entry.command == descriptor.command:
                return entry.result

        inflight = self._inflight.get(source.id)
        if inflight and inflight[0] == descriptor.command:
            return await asyncio.shield(inflight[1])

        task = asyncio.ensure_future(self._detect_safely(source))
        self._inflight[source.id] = (descriptor.command, task)
        try:
            result = await asyncio.shield(task)
        finally:
            current = self._inflight.get(source.id)
            still_registered = current is not None and current[1] is task
            if still_registered:
                del self._inflight[source.id]

        if still_registered:
            self._cache[source.id] = _CacheEntry(result, descriptor.command, result.detected_at)
        return result

    async def _detect_safely(self, source: AgentSource) -> DetectionResult:
        try:
            return await self._detect(source)
        except Exception:
            logger.exception("Unexpected error detecting %s", source.id)
            return DetectionResult.missing(source.descriptor(), source.reported_command)

    def _shell_details(self) -> dict:
        context = self._runner.shell_context()
        return {
            "shell": context.executable_path,
            "shellArgs": list(context.argv_prefix),
            "pathPreview": self._path_preview(context.path),
            "packaged": self._packaged,
        }

    def _path_preview(self, path_value: str) -> list[str]:
        delimiter = ";" if self._platform == "win32" else ":"
        entries = [entry.strip() for entry in path_value.split(delimiter)]
        return [entry for entry in entries if entry][:_PATH_PREVIEW_ENTRIES]

    def _log_failure(self, agent_id: str, command: str, error: BaseException, timeout: float, phase: str) -> None:
        details = {
            "agentId": agent_id,
            "command": command,
            "phase": phase,
            "timeout": timeout,
            "error": str(error),
            **self._shell_details(),
        }
        self._log.warn("command detection failed", details)

    async def _detect(self, source: AgentSource) -> DetectionResult:
        descriptor = source.descriptor()
        reported = source.reported_command
        timeout = self.timeout
        kind = "builtin" if descriptor.is_builtin else "custom"

        self._log.debug(
            f"Start {kind} CLI detection",
            {"agentId": descriptor.id, "effectiveCommand": descriptor.command, "timeout": timeout, **self._shell_details()},
        )

        version_command = descriptor.version_command
        try:
            output = await self._runner.run(version_command, timeout=timeout)
        except AgentDeckError as e:
            self._log_failure(descriptor.id, version_command, e, timeout, "version")
            available = await self.is_command_available(descriptor.command, timeout)
            self._log.debug(
                f"{kind.capitalize()} CLI fallback probe result",
                {"agentId": descriptor.id, "effectiveCommand": descriptor.command, "commandAvailable": available},
            )
            if available:
                return DetectionResult.present(descriptor, reported)
            return DetectionResult.missing(descriptor, reported, timed_out=isinstance(e, CommandTimeout))

        version = descriptor.extract_version(output)
        self._log.debug(
            f"{kind.capitalize()} CLI version command success",
            {
                "agentId": descriptor.id,
                "effectiveCommand": descriptor.command,
                "version": version,
                "outputPreview": first_line_preview(output),
            },
        )
        return DetectionResult.verified(descriptor, reported, version)

    async def is_command_available(self, command: str, timeout: float) -> bool:
        """Presence probe: does the executable exist on disk or on PATH?"""
        executable = extract_executable(command)
        if not executable:
            return False

        if is_path_like(executable):
            exists = self._path_exists(executable)
            self._log.debug("Path-like command probe result", {"command": command, "executable": executable, "exists": exists})
            return exists

        if self._platform == "win32":
            probe_command = f"where.exe {executable}"
        else:
            probe_command = f"command -v {executable}"
        probe_timeout = min(timeout, self._config.probe_timeout_cap)
        self._log.debug(
            "Start command availability probe",
            {"command": command, "executable": executable, "probeCommand": probe_command, "timeout": probe_timeout},
        )
        try:
            output = await self._runner.run(probe_command, timeout=probe_timeout)
        except AgentDeckError as e:
            self._log_failure(executable, probe_command, e, probe_timeout, "probe")
            return False

        available = bool(output.strip())
        self._log.debug(
            "Command availability probe success",
            {"command": command, "executable": executable, "available": available, "outputPreview": first_line_preview(output)},
        )
        return available
