"""Tests for GitWorkdirRegistry authorization and caching."""

import os
from unittest.mock import AsyncMock

import pytest

from agentdeck.errors import NonZeroExit, UnauthorizedWorkdir
from agentdeck.services.git_workdir_registry import GitWorkdirRegistry


@pytest.fixture
def runner():
    return AsyncMock()


@pytest.fixture
def registry(runner):
    return GitWorkdirRegistry(runner)


class TestValidation:
    def test_plain_directory_rejected(self, registry, tmp_path):
        with pytest.raises(UnauthorizedWorkdir, match="not a git repository") as info:
            registry.get_or_create_context(str(tmp_path))
        assert info.value.kind == "unauthorized_workdir"

    def test_missing_path_rejected(self, registry, tmp_path):
        with pytest.raises(UnauthorizedWorkdir, match="does not exist"):
            registry.get_or_create_context(str(tmp_path / "missing"))

    def test_git_directory_accepted(self, registry, tmp_path):
        (tmp_path / ".git").mkdir()
        context = registry.get_or_create_context(str(tmp_path))
        assert context.resolved_path == os.path.realpath(tmp_path)
        assert context.authorized is False
        assert context.display_name == tmp_path.name

    def test_authorized_path_accepted(self, registry, tmp_path):
        registry.register_authorized(str(tmp_path))
        context = registry.get_or_create_context(str(tmp_path))
        assert context.authorized is True

    def test_unauthorize_drops_context(self, registry, tmp_path):
        registry.register_authorized(str(tmp_path))
        registry.get_or_create_context(str(tmp_path))
        registry.unregister_authorized(str(tmp_path))
        assert registry.cached_paths() == []
        with pytest.raises(UnauthorizedWorkdir):
            registry.get_or_create_context(str(tmp_path))


class TestCaching:
    def test_one_context_per_canonical_path(self, registry, tmp_path):
        (tmp_path / "repo" / ".git").mkdir(parents=True)
        link = tmp_path / "link"
        link.symlink_to(tmp_path / "repo")
        first = registry.get_or_create_context(str(tmp_path / "repo"))
        second = registry.get_or_create_context(str(tmp_path / "repo" / ".." / "repo"))
        third = registry.get_or_create_context(str(link))
        assert first is second is third

    def test_clear_all(self, registry, tmp_path):
        registry.register_authorized(str(tmp_path))
        registry.get_or_create_context(str(tmp_path))
        registry.clear_all()
        assert registry.cached_paths() == []
        assert not registry.is_authorized(str(tmp_path))


class TestInitRepository:
    @pytest.mark.asyncio
    async def test_init_authorizes(self, registry, runner, tmp_path):
        runner.run_exec.return_value = "Initialized empty Git repository"
        context = await registry.init_repository(str(tmp_path))
        assert context.authorized is True
        assert registry.is_authorized(str(tmp_path))
        assert registry.get_or_create_context(str(tmp_path)) is context
        assert runner.run_exec.call_args.args[0] == ["git", "init"]

    @pytest.mark.asyncio
    async def test_init_missing_directory(self, registry, tmp_path):
        with pytest.raises(UnauthorizedWorkdir):
            await registry.init_repository(str(tmp_path / "missing"))

    @pytest.mark.asyncio
    async def test_init_failure_not_authorized(self, registry, runner, tmp_path):
        runner.run_exec.side_effect = NonZeroExit("git init", 1)
        with pytest.raises(NonZeroExit):
            await registry.init_repository(str(tmp_path))
        assert not registry.is_authorized(str(tmp_path))
