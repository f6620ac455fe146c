"""Authorization and caching of Git working directories."""

from __future__ import annotations

import logging
from pathlib import Path

from agentdeck.errors import UnauthorizedWorkdir
from agentdeck.infra.command_runner import CommandRunner
from agentdeck.infra.git import GitCommandContext
from agentdeck.models.workdir import GitWorkdirContext

logger = logging.getLogger(__name__)


def canonical_path(path: str) -> str:
    return str(Path(path).expanduser().resolve())


class GitWorkdirRegistry:
    """Decides which paths may be driven by Git and caches one context per path.

    A path is admitted when it was explicitly authorized, or when it is an
    existing directory containing a .git entry. Everything else raises
    UnauthorizedWorkdir.
    """

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner
        self._authorized: set[str] = set()
        self._contexts: dict[str, GitWorkdirContext] = {}

    def register_authorized(self, path: str) -> str:
        resolved = canonical_path(path)
        self._authorized.add(resolved)
        logger.debug("Authorized workdir %s", resolved)
        return resolved

    def unregister_authorized(self, path: str) -> None:
        """Revoke authorization and drop the cached context."""
        resolved = canonical_path(path)
        self._authorized.discard(resolved)
        self._contexts.pop(resolved, None)
        logger.debug("Unauthorized workdir %s", resolved)

    def is_authorized(self, path: str) -> bool:
        return canonical_path(path) in self._authorized

    def _validate(self, resolved: str) -> bool:
        if resolved in self._authorized:
            return True
        path = Path(resolved)
        if not path.is_dir():
            raise UnauthorizedWorkdir(resolved, "path does not exist or is not a directory")
        if not (path / ".git").exists():
            raise UnauthorizedWorkdir(resolved, "not a git repository")
        return False

    def get_or_create_context(self, path: str) -> GitWorkdirContext:
        resolved = canonical_path(path)
        cached = self._contexts.get(resolved)
        if cached is not None:
            return cached

        authorized = self._validate(resolved)
        context = GitWorkdirContext(
            resolved_path=resolved,
            authorized=authorized,
            git=GitCommandContext(resolved, self._runner),
        )
        self._contexts[resolved] = context
        return context

    async def init_repository(self, path: str) -> GitWorkdirContext:
        """Run `git init` in an existing directory, then authorize and cache it."""
        resolved = canonical_path(path)
        if not Path(resolved).is_dir():
            raise UnauthorizedWorkdir(resolved, "path does not exist or is not a directory")

        git = GitCommandContext(resolved, self._runner)
        await git.init()
        self._authorized.add(resolved)
        context = GitWorkdirContext(resolved_path=resolved, authorized=True, git=git)
        self._contexts[resolved] = context
        return context

    def clear_all(self) -> None:
        self._contexts.clear()
        self._authorized.clear()

    def cached_paths(self) -> list[str]:
        return sorted(self._contexts)
