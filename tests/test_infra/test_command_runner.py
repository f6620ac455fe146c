"""Tests for one-shot command execution (real processes, POSIX only)."""

import asyncio
import os
import sys
import time
from unittest.mock import MagicMock

import pytest

from agentdeck.errors import CommandTimeout, NonZeroExit, SpawnError
from agentdeck.infra.command_runner import CommandRunner
from agentdeck.infra.process_tree import PosixProcessTreeKiller
from agentdeck.models.shell import ShellContext

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell semantics")


@pytest.fixture
def sh():
    return ShellContext("/bin/sh", ("-c",), {"PATH": os.environ.get("PATH", "/usr/bin:/bin")})


@pytest.fixture
def runner():
    return CommandRunner()


class TestRunPty:
    @pytest.mark.asyncio
    async def test_captures_output(self, runner, sh):
        output = await runner.run("echo hello", timeout=10, shell_context=sh)
        assert output.strip() == "hello"
        assert "\r" not in output

    @pytest.mark.asyncio
    async def test_strips_escape_sequences(self, runner, sh):
        output = await runner.run(r"printf '\033[31mred\033[0m\n'", timeout=10, shell_context=sh)
        assert output.strip() == "red"

    @pytest.mark.asyncio
    async def test_runs_on_a_tty(self, runner, sh):
        output = await runner.run("test -t 1 && echo tty", timeout=10, shell_context=sh)
        assert output.strip() == "tty"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, runner, sh):
        with pytest.raises(NonZeroExit) as info:
            await runner.run("echo boom; exit 3", timeout=10, shell_context=sh)
        assert info.value.code == 3
        assert "boom" in info.value.stdout

    @pytest.mark.asyncio
    async def test_timeout_is_bounded(self, runner, sh):
        start = time.monotonic()
        with pytest.raises(CommandTimeout):
            await runner.run("sleep 30", timeout=0.5, shell_context=sh)
        assert time.monotonic() - start < 5

    @pytest.mark.asyncio
    async def test_missing_shell(self, runner):
        context = ShellContext("/nonexistent/shell", ("-c",), {"PATH": "/usr/bin"})
        with pytest.raises(SpawnError):
            await runner.run("true", timeout=5, shell_context=context)

    @pytest.mark.asyncio
    async def test_env_and_cwd(self, runner, sh, tmp_path):
        output = await runner.run(
            'echo "$DECK_VALUE"; pwd', cwd=str(tmp_path), env={"DECK_VALUE": "42"}, timeout=10, shell_context=sh
        )
        lines = output.strip().splitlines()
        assert lines[0] == "42"
        assert os.path.realpath(lines[1]) == os.path.realpath(tmp_path)


class TestRunPipes:
    @pytest.mark.asyncio
    async def test_separate_stderr(self, runner, sh):
        with pytest.raises(NonZeroExit) as info:
            await runner.run("echo out; echo err >&2; exit 1", timeout=10, use_pty=False, shell_context=sh)
        assert info.value.stderr.strip() == "err"
        assert info.value.stdout.strip() == "out"

    @pytest.mark.asyncio
    async def test_combined_output(self, runner, sh):
        output = await runner.run("echo out; echo err >&2", timeout=10, use_pty=False, shell_context=sh)
        assert "out" in output
        assert "err" in output

    @pytest.mark.asyncio
    async def test_timeout_kills_tree(self, sh):
        killer = MagicMock(wraps=PosixProcessTreeKiller())
        runner = CommandRunner(killer=killer)
        with pytest.raises(CommandTimeout):
            await runner.run("sleep 30 & sleep 30", timeout=0.3, use_pty=False, shell_context=sh)
        killer.kill.assert_called_once()
        assert killer.kill.call_args.args[1] is True


class TestRunExec:
    @pytest.mark.asyncio
    async def test_argv_without_shell(self, runner):
        output = await runner.run_exec(["sh", "-c", "echo $0", "literal arg"], timeout=10)
        assert output.strip() == "literal arg"

    @pytest.mark.asyncio
    async def test_exec_failure(self, runner):
        with pytest.raises(NonZeroExit):
            await runner.run_exec(["sh", "-c", "exit 2"], timeout=10)

    @pytest.mark.asyncio
    async def test_concurrent_runs(self, runner, sh):
        outputs = await asyncio.gather(
            *(runner.run(f"echo {i}", timeout=10, shell_context=sh) for i in range(5))
        )
        assert [o.strip() for o in outputs] == [str(i) for i in range(5)]
