"""AppContext: wires config, process infrastructure and services together."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from agentdeck.config import AppConfig, load_config

if TYPE_CHECKING:
    from pathlib import Path

    from agentdeck.infra.command_runner import CommandRunner
    from agentdeck.infra.detect_log import DetectionLog
    from agentdeck.infra.pty_session_mgr import PtySessionManager
    from agentdeck.infra.shell import ShellResolver
    from agentdeck.services.detection_service import CliAgentDetector
    from agentdeck.services.git_workdir_registry import GitWorkdirRegistry
    from agentdeck.services.temp_workspace_service import TempWorkspaceService

logger = logging.getLogger(__name__)


class AppContext:
    """Central wiring for all application dependencies.

    Lazily constructs components on first access. Call `close()` on shutdown
    so that every terminal's process tree is torn down.
    """

    def __init__(self, config: AppConfig | None = None, config_path: Path | None = None) -> None:
        self.config = config or load_config(config_path)
        self._shell_resolver: ShellResolver | None = None
        self._command_runner: CommandRunner | None = None
        self._detect_log: DetectionLog | None = None
        self._detector: CliAgentDetector | None = None
        self._pty_manager: PtySessionManager | None = None
        self._git_registry: GitWorkdirRegistry | None = None
        self._temp_workspaces: TempWorkspaceService | None = None

    async def close(self) -> None:
        """Destroy all terminals and wait for their teardown."""
        if self._pty_manager is not None:
            self._pty_manager.destroy_all()
            await self._pty_manager.wait_closed()
        if self._git_registry is not None:
            self._git_registry.clear_all()
        if self._detector is not None:
            self._detector.invalidate()
        logger.info("AppContext closed")

    @property
    def shell_resolver(self) -> ShellResolver:
        if self._shell_resolver is None:
            from agentdeck.infra.shell import ShellResolver

            self._shell_resolver = ShellResolver()
        return self._shell_resolver

    @property
    def command_runner(self) -> CommandRunner:
        if self._command_runner is None:
            from agentdeck.infra.command_runner import CommandRunner

            self._command_runner = CommandRunner(
                shell_resolver=self.shell_resolver,
                shell_config=self.config.shell.to_shell_config(),
            )
        return self._command_runner

    @property
    def detect_log(self) -> DetectionLog:
        if self._detect_log is None:
            from agentdeck.infra.detect_log import DetectionLog

            self._detect_log = DetectionLog(
                self.config.detect_log_path,
                debug_enabled=self.config.debug_cli_detect,
            )
        return self._detect_log

    @property
    def detector(self) -> CliAgentDetector:
        if self._detector is None:
            from agentdeck.services.detection_service import CliAgentDetector

            self._detector = CliAgentDetector(
                self.command_runner,
                self.detect_log,
                config=self.config.detection,
                packaged=self.config.packaged,
            )
        return self._detector

    @property
    def pty_manager(self) -> PtySessionManager:
        if self._pty_manager is None:
            from agentdeck.infra.pty_session_mgr import PtySessionManager

            self._pty_manager = PtySessionManager(
                shell_resolver=self.shell_resolver,
                config=self.config.terminal,
            )
        return self._pty_manager

    @property
    def git_registry(self) -> GitWorkdirRegistry:
        if self._git_registry is None:
            from agentdeck.services.git_workdir_registry import GitWorkdirRegistry

            self._git_registry = GitWorkdirRegistry(self.command_runner)
        return self._git_registry

    @property
    def temp_workspaces(self) -> TempWorkspaceService:
        if self._temp_workspaces is None:
            from agentdeck.services.temp_workspace_service import TempWorkspaceService

            self._temp_workspaces = TempWorkspaceService(
                self.git_registry,
                self.pty_manager,
                config=self.config.workspace,
            )
        return self._temp_workspaces
