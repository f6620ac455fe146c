"""One-shot command execution in a PTY or pipes, with a hard timeout."""

from __future__ import annotations

import asyncio
import logging
import os
import struct
import subprocess
import sys
from collections.abc import Mapping, Sequence

from agentdeck.errors import CommandTimeout, NonZeroExit, SpawnError
from agentdeck.infra.ansi import normalize_output
from agentdeck.infra.process_tree import ProcessTreeKiller, get_process_tree_killer
from agentdeck.infra.shell import ShellResolver, login_argv
from agentdeck.models.shell import ShellConfig, ShellContext

if sys.platform != "win32":
    import fcntl
    import pty
    import termios

logger = logging.getLogger(__name__)

# Wide enough that version banners never wrap inside the PTY.
_PTY_COLS = 512
_PTY_ROWS = 50
# How long to keep draining PTY output after the child has exited.
_DRAIN_GRACE = 0.5
_READ_CHUNK = 65536


def _spawn_kwargs() -> dict:
    """Start children as the root of their own process group."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class CommandRunner:
    """Runs a single command to completion inside a resolved shell."""

    def __init__(
        self,
        shell_resolver: ShellResolver | None = None,
        shell_config: ShellConfig | None = None,
        killer: ProcessTreeKiller | None = None,
    ) -> None:
        self._resolver = shell_resolver or ShellResolver()
        self._shell_config = shell_config or ShellConfig()
        self._killer = killer or get_process_tree_killer()

    @property
    def shell_resolver(self) -> ShellResolver:
        return self._resolver

    def shell_context(self) -> ShellContext:
        """The context every run() without an explicit one executes in."""
        return self._resolver.resolve(self._shell_config)

    async def run(
        self,
        command_line: str,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float,
        use_pty: bool = True,
        shell_context: ShellContext | None = None,
    ) -> str:
        """Run a command line through the shell and return its cleaned output.

        Raises CommandTimeout, NonZeroExit or SpawnError.
        """
        context = (shell_context or self.shell_context()).with_env(env)
        argv = login_argv(context, command_line)
        logger.debug("Running %r via %s (timeout=%ss, pty=%s)", command_line, context.executable_path, timeout, use_pty)

        if use_pty and sys.platform != "win32":
            code, output = await self._run_pty(argv, command_line, cwd, dict(context.environment), timeout)
            output = normalize_output(output)
            if code != 0:
                raise NonZeroExit(command_line, code, stderr=output, stdout=output)
            return output

        code, stdout, stderr = await self._run_pipes(argv, command_line, cwd, dict(context.environment), timeout)
        stdout = normalize_output(stdout)
        stderr = normalize_output(stderr)
        if code != 0:
            raise NonZeroExit(command_line, code, stderr=stderr, stdout=stdout)
        return stdout + stderr

    async def run_exec(
        self,
        argv: Sequence[str],
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float = 30.0,
    ) -> str:
        """Run an argv list directly (no shell) and return stdout."""
        full_env = self._resolver.environment_for_command(extra=env)
        command = " ".join(argv)
        code, stdout, stderr = await self._run_pipes(list(argv), command, cwd, full_env, timeout)
        if code != 0:
            raise NonZeroExit(command, code, stderr=stderr, stdout=stdout)
        return stdout

    async def _kill_on_timeout(self, proc: asyncio.subprocess.Process, command: str, timeout: float) -> None:
        logger.debug("Timeout after %ss, killing process tree %d (%s)", timeout, proc.pid, command)
        await asyncio.to_thread(self._killer.kill, proc.pid, True)
        try:
            await asyncio.wait_for(proc.wait(), timeout=5)
        except asyncio.TimeoutError:
            logger.warning("Process %d did not exit after force kill", proc.pid)

    async def _run_pipes(
        self,
        argv: list[str],
        command: str,
        cwd: str | None,
        env: dict[str, str],
        timeout: float,
    ) -> tuple[int, str, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **_spawn_kwargs(),
            )
        except OSError as e:
            raise SpawnError(argv[0], str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill_on_timeout(proc, command, timeout)
            raise CommandTimeout(command, timeout) from None

        return (
            proc.returncode if proc.returncode is not None else -1,
            stdout.decode("utf-8", errors="replace"),
            stderr.decode("utf-8", errors="replace"),
        )

    async def _run_pty(
        self,
        argv: list[str],
        command: str,
        cwd: str | None,
        env: dict[str, str],
        timeout: float,
    ) -> tuple[int, str]:
        loop = asyncio.get_running_loop()
        master_fd, slave_fd = pty.openpty()
        fcntl.ioctl(slave_fd, termios.TIOCSWINSZ, struct.pack("HHHH", _PTY_ROWS, _PTY_COLS, 0, 0))
        env.setdefault("TERM", "xterm-256color")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=env,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                **_spawn_kwargs(),
            )
        except OSError as e:
            os.close(master_fd)
            raise SpawnError(argv[0], str(e)) from e
        finally:
            os.close(slave_fd)

        chunks: list[bytes] = []
        eof = loop.create_future()

        def _on_readable() -> None:
            try:
                data = os.read(master_fd, _READ_CHUNK)
            except OSError:
                data = b""  # EIO once every slave fd is closed
            if data:
                chunks.append(data)
                return
            loop.remove_reader(master_fd)
            if not eof.done():
                eof.set_result(None)

        loop.add_reader(master_fd, _on_readable)
        try:
            try:
                await asyncio.wait_for(proc.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                await self._kill_on_timeout(proc, command, timeout)
                raise CommandTimeout(command, timeout, b"".join(chunks).decode("utf-8", errors="replace")) from None

            # Background grandchildren may keep the slave open; don't wait on them.
            try:
                await asyncio.wait_for(asyncio.shield(eof), timeout=_DRAIN_GRACE)
            except asyncio.TimeoutError:
                pass
        finally:
            loop.remove_reader(master_fd)
            os.close(master_fd)

        code = proc.returncode if proc.returncode is not None else -1
        return code, b"".join(chunks).decode("utf-8", errors="replace")
