"""Tests for GitCommandContext: output parsing and real git round trips."""

import shutil
from unittest.mock import AsyncMock

import pytest

from agentdeck.errors import NonZeroExit
from agentdeck.infra.command_runner import CommandRunner
from agentdeck.infra.git import GitCommandContext, parse_log, parse_porcelain_status

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


class TestParsing:
    def test_porcelain_status(self):
        output = " M src/app.py\0A  new.txt\0?? scratch/\0R  renamed.py\0old.py\0"
        entries = parse_porcelain_status(output)
        assert [e.path for e in entries] == ["src/app.py", "new.txt", "scratch/", "renamed.py"]
        assert entries[0].index == " " and entries[0].worktree == "M"
        assert entries[2].untracked
        assert entries[3].original_path == "old.py"

    def test_porcelain_paths_are_verbatim(self):
        entries = parse_porcelain_status("?? caf\u00e9 menu.txt\0 M a -> b.txt\0")
        assert [e.path for e in entries] == ["caf\u00e9 menu.txt", "a -> b.txt"]
        assert entries[1].original_path is None

    def test_log(self):
        output = "abc123\x1fAda\x1f2024-01-01T00:00:00+00:00\x1fInitial commit\nbroken line\n"
        commits = parse_log(output)
        assert len(commits) == 1
        assert commits[0].sha == "abc123"
        assert commits[0].subject == "Initial commit"


class TestWithMockRunner:
    @pytest.mark.asyncio
    async def test_runs_in_workdir(self):
        runner = AsyncMock()
        runner.run_exec.return_value = "true\n"
        git = GitCommandContext("/repo", runner)
        assert await git.is_repo() is True
        args, kwargs = runner.run_exec.call_args
        assert args[0] == ["git", "rev-parse", "--is-inside-work-tree"]
        assert kwargs["cwd"] == "/repo"
        assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"

    @pytest.mark.asyncio
    async def test_not_a_repo(self):
        runner = AsyncMock()
        runner.run_exec.side_effect = NonZeroExit("git rev-parse", 128, stderr="fatal: not a git repository")
        assert await GitCommandContext("/tmp", runner).is_repo() is False

    @pytest.mark.asyncio
    async def test_log_on_empty_repo(self):
        runner = AsyncMock()
        runner.run_exec.side_effect = NonZeroExit(
            "git log", 128, stderr="fatal: your current branch 'main' does not have any commits yet"
        )
        assert await GitCommandContext("/repo", runner).log() == []

    @pytest.mark.asyncio
    async def test_head_sha_failure(self):
        runner = AsyncMock()
        runner.run_exec.side_effect = NonZeroExit("git rev-parse HEAD", 128)
        with pytest.raises(RuntimeError, match="HEAD SHA"):
            await GitCommandContext("/repo", runner).head_sha()

    @pytest.mark.asyncio
    async def test_stage_nothing_is_noop(self):
        runner = AsyncMock()
        await GitCommandContext("/repo", runner).stage([])
        runner.run_exec.assert_not_called()

    @pytest.mark.asyncio
    async def test_detached_head_has_no_branch(self):
        runner = AsyncMock()
        runner.run_exec.side_effect = NonZeroExit("git symbolic-ref --short -q HEAD", 1)
        assert await GitCommandContext("/repo", runner).current_branch() == ""

    @pytest.mark.asyncio
    async def test_branch_lookup_errors_propagate(self):
        runner = AsyncMock()
        runner.run_exec.side_effect = NonZeroExit("git symbolic-ref --short -q HEAD", 128)
        with pytest.raises(NonZeroExit):
            await GitCommandContext("/repo", runner).current_branch()


@pytest.fixture
def git(tmp_path, monkeypatch):
    for key in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(key, "Deck Test")
    for key in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(key, "deck@example.com")
    return GitCommandContext(str(tmp_path), CommandRunner())


@requires_git
class TestRealGit:
    @pytest.mark.asyncio
    async def test_init_stage_commit_log(self, git, tmp_path):
        await git.init()
        assert await git.is_repo()
        assert await git.log() == []

        (tmp_path / "readme.md").write_text("hello\n")
        status = await git.status()
        assert [(e.path, e.untracked) for e in status] == [("readme.md", True)]

        await git.stage(["readme.md"])
        assert "readme.md" in await git.diff(staged=True)
        sha = await git.commit("Initial commit")
        assert len(sha) == 40

        commits = await git.log()
        assert [c.subject for c in commits] == ["Initial commit"]
        assert commits[0].sha == sha
        assert await git.current_branch() in await git.branches()
        assert await git.status() == []

    @pytest.mark.asyncio
    async def test_detached_head(self, git, tmp_path):
        await git.init()
        (tmp_path / "a.txt").write_text("a\n")
        await git.stage(["a.txt"])
        sha = await git.commit("First")
        await git._git("checkout", "-q", "--detach")
        assert await git.current_branch() == ""
        assert await git.head_sha() == sha

    @pytest.mark.asyncio
    async def test_status_keeps_special_paths(self, git, tmp_path):
        await git.init()
        (tmp_path / "café menu.txt").write_text("x\n")
        (tmp_path / "na\u00efve.txt").write_text("x\n")
        status = await git.status()
        assert sorted(e.path for e in status) == sorted(["café menu.txt", "na\u00efve.txt"])

    @pytest.mark.asyncio
    async def test_rename_reports_original(self, git, tmp_path):
        await git.init()
        (tmp_path / "old.txt").write_text("same content\n")
        await git.stage(["old.txt"])
        await git.commit("Add old")
        (tmp_path / "old.txt").rename(tmp_path / "new name.txt")
        await git.stage(["old.txt", "new name.txt"])
        [entry] = await git.status()
        assert (entry.index, entry.path, entry.original_path) == ("R", "new name.txt", "old.txt")

    @pytest.mark.asyncio
    async def test_unstage(self, git, tmp_path):
        await git.init()
        (tmp_path / "a.txt").write_text("a\n")
        await git.stage(["a.txt"])
        await git.unstage(["a.txt"])
        assert [(e.path, e.untracked) for e in await git.status()] == [("a.txt", True)]

        await git.stage(["a.txt"])
        await git.commit("First")
        (tmp_path / "a.txt").write_text("b\n")
        await git.stage(["a.txt"])
        assert [(e.index, e.worktree) for e in await git.status()] == [("M", " ")]
        await git.unstage(["a.txt"])
        assert [(e.index, e.worktree) for e in await git.status()] == [(" ", "M")]
