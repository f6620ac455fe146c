"""Git commands bound to one verified working directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from agentdeck.errors import NonZeroExit
from agentdeck.infra.command_runner import CommandRunner

logger = logging.getLogger(__name__)

GIT_TIMEOUT = 30.0
_LOG_SEPARATOR = "\x1f"
# Never let git block on a credential or editor prompt.
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_EDITOR": "true"}


@dataclass(frozen=True)
class GitFileStatus:
    path: str
    index: str
    worktree: str
    original_path: str | None = None

    @property
    def untracked(self) -> bool:
        return self.index == "?" and self.worktree == "?"


@dataclass(frozen=True)
class GitCommit:
    sha: str
    author: str
    date: str
    subject: str


def parse_porcelain_status(output: str) -> list[GitFileStatus]:
    """Parse `git status --porcelain=v1 -z` output.

    Entries are NUL terminated and paths are never quoted. A rename or copy
    entry is followed by one more field holding the original path.
    """
    entries = []
    fields = iter(output.split("\0"))
    for field in fields:
        if len(field) < 4:
            continue
        index, worktree, path = field[0], field[1], field[3:]
        original = None
        if index in ("R", "C") or worktree in ("R", "C"):
            original = next(fields, None)
        entries.append(GitFileStatus(path=path, index=index, worktree=worktree, original_path=original))
    return entries


def parse_log(output: str) -> list[GitCommit]:
    commits = []
    for line in output.splitlines():
        parts = line.split(_LOG_SEPARATOR)
        if len(parts) != 4:
            continue
        sha, author, date, subject = parts
        commits.append(GitCommit(sha=sha, author=author, date=date, subject=subject))
    return commits


class GitCommandContext:
    """Runs git with cwd fixed to one resolved path.

    Instances are handed out by GitWorkdirRegistry only after the path has
    been authorized or verified to be a repository.
    """

    def __init__(self, path: str, runner: CommandRunner, timeout: float = GIT_TIMEOUT) -> None:
        self.path = path
        self._runner = runner
        self._timeout = timeout

    async def _git(self, *args: str) -> str:
        return await self._runner.run_exec(
            ["git", *args],
            cwd=self.path,
            env=_GIT_ENV,
            timeout=self._timeout,
        )

    async def is_repo(self) -> bool:
        """Check if the path is inside a git work tree."""
        try:
            output = await self._git("rev-parse", "--is-inside-work-tree")
        except NonZeroExit:
            return False
        return output.strip() == "true"

    async def init(self) -> str:
        output = await self._git("init")
        logger.info("Initialized git repository in %s", self.path)
        return output.strip()

    async def status(self) -> list[GitFileStatus]:
        output = await self._git("status", "--porcelain=v1", "-z", "--untracked-files=all")
        return parse_porcelain_status(output)

    async def current_branch(self) -> str:
        """Current branch name; works on an unborn branch too.

        Returns an empty string when HEAD is detached.
        """
        try:
            output = await self._git("symbolic-ref", "--short", "-q", "HEAD")
        except NonZeroExit as e:
            if e.code == 1:
                return ""
            raise
        return output.strip()

    async def has_commits(self) -> bool:
        try:
            await self._git("rev-parse", "--verify", "-q", "HEAD")
        except NonZeroExit:
            return False
        return True

    async def head_sha(self) -> str:
        """Get the HEAD commit SHA."""
        try:
            output = await self._git("rev-parse", "HEAD")
        except NonZeroExit as e:
            raise RuntimeError(f"Could not get HEAD SHA in {self.path}") from e
        sha = output.strip()
        if not sha:
            raise RuntimeError(f"Could not get HEAD SHA in {self.path}")
        return sha

    async def log(self, max_count: int = 50) -> list[GitCommit]:
        """Recent commits, newest first. Empty for a repository without commits."""
        fmt = _LOG_SEPARATOR.join(("%H", "%an", "%aI", "%s"))
        try:
            output = await self._git("log", f"--max-count={max_count}", f"--pretty=format:{fmt}")
        except NonZeroExit as e:
            if "does not have any commits" in e.stderr:
                return []
            raise
        return parse_log(output)

    async def branches(self) -> list[str]:
        output = await self._git("branch", "--format=%(refname:short)")
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def diff(self, staged: bool = False, max_chars: int = 100_000) -> str:
        """Unified diff of the work tree (or the index when staged)."""
        args = ["diff", "--cached"] if staged else ["diff"]
        output = await self._git(*args)
        return output[:max_chars]

    async def stage(self, paths: list[str]) -> None:
        if paths:
            await self._git("add", "--", *paths)

    async def unstage(self, paths: list[str]) -> None:
        if not paths:
            return
        if await self.has_commits():
            await self._git("reset", "-q", "HEAD", "--", *paths)
        else:
            # Nothing to reset to yet; drop the paths from the index
            await self._git("rm", "--cached", "-r", "-q", "--", *paths)

    async def commit(self, message: str) -> str:
        """Commit the index and return the new HEAD SHA."""
        await self._git("commit", "-m", message)
        sha = await self.head_sha()
        logger.info("Committed %s in %s", sha[:8], self.path)
        return sha
