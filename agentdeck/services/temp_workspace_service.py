"""Throwaway Git workspaces for quick agent sessions."""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import shutil
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from agentdeck.config import WorkspaceConfig
from agentdeck.errors import AgentDeckError
from agentdeck.infra.pty_session_mgr import PtySessionManager
from agentdeck.services.git_workdir_registry import GitWorkdirRegistry

logger = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 50
# Lets terminals rooted in the folder release their handles before deletion.
_REMOVE_SETTLE_DELAY = 0.5


class TempWorkspaceService:
    """Creates and removes timestamp-named, git-initialized folders."""

    def __init__(
        self,
        git_registry: GitWorkdirRegistry,
        pty_manager: PtySessionManager,
        config: WorkspaceConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
        settle_delay: float = _REMOVE_SETTLE_DELAY,
    ) -> None:
        self._git = git_registry
        self._pty = pty_manager
        self._config = config or WorkspaceConfig()
        self._clock = clock
        self._settle_delay = settle_delay

    def _reserve_folder(self, base: Path) -> Path:
        stamp = self._clock().strftime("%Y%m%d-%H%M%S")
        for attempt in range(1, MAX_NAME_ATTEMPTS + 1):
            name = stamp if attempt == 1 else f"{stamp}-{attempt}"
            candidate = base / name
            try:
                candidate.mkdir()
            except FileExistsError:
                continue
            return candidate
        candidate = base / f"{stamp}-{secrets.token_hex(3)}"
        candidate.mkdir()
        return candidate

    async def create(self, base_path: str | None = None) -> str:
        """Create a fresh folder under base_path, git-init it and authorize it.

        The folder is removed again if git init fails.
        """
        base = Path(base_path).expanduser() if base_path else self._config.resolved_temp_root
        base.mkdir(parents=True, exist_ok=True)
        folder = self._reserve_folder(base)

        try:
            context = await self._git.init_repository(str(folder))
        except (AgentDeckError, OSError):
            logger.warning("git init failed in %s, removing it", folder, exc_info=True)
            shutil.rmtree(folder, ignore_errors=True)
            raise

        logger.info("Created temporary workspace %s", context.resolved_path)
        return context.resolved_path

    async def remove(self, path: str) -> None:
        """Destroy terminals rooted in path, revoke Git access, delete the tree."""
        tasks = self._pty.destroy_by_workdir(path)
        self._git.unregister_authorized(path)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await asyncio.sleep(self._settle_delay)
        await asyncio.to_thread(shutil.rmtree, path, True)
        logger.info("Removed temporary workspace %s", path)

    @staticmethod
    def check_writable(path: str) -> bool:
        target = Path(path).expanduser()
        while not target.exists() and target != target.parent:
            target = target.parent
        return target.is_dir() and os.access(target, os.W_OK)
