"""Pseudo-terminal process backends: POSIX pty and Windows ConPTY (pywinpty)."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import signal
import struct
import sys
from collections.abc import Callable, Sequence
from typing import Protocol

if sys.platform != "win32":
    import fcntl
    import pty
    import termios

logger = logging.getLogger(__name__)

_READ_CHUNK = 65536
_WINDOWS_POLL_INTERVAL = 0.2


class PtyProcess(Protocol):
    """A running child attached to a pseudo-terminal."""

    pid: int

    @property
    def returncode(self) -> int | None: ...

    def start(self, on_data: Callable[[bytes], None], on_eof: Callable[[], None]) -> None:
        """Begin pushing output chunks; on_eof fires once when output ends."""
        ...

    def write(self, data: bytes) -> None: ...

    def set_size(self, cols: int, rows: int) -> None: ...

    async def wait(self) -> int | None: ...

    def close(self) -> None:
        """Release terminal resources. Does not signal the process."""
        ...


class PtyBackend(Protocol):
    async def spawn(
        self,
        argv: Sequence[str],
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
    ) -> PtyProcess: ...


def _winsize(cols: int, rows: int) -> bytes:
    return struct.pack("HHHH", max(1, rows), max(1, cols), 0, 0)


def _make_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the pty slave by now.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PosixPtyProcess:
    """Child on a stdlib pty; output is pushed via loop.add_reader."""

    def __init__(self, proc: asyncio.subprocess.Process, master_fd: int) -> None:
        self._proc = proc
        self._master_fd = master_fd
        self._loop = asyncio.get_running_loop()
        self._write_buffer = bytearray()
        self._closed = False
        self._on_data: Callable[[bytes], None] | None = None
        self._on_eof: Callable[[], None] | None = None
        self.pid = proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    def start(self, on_data: Callable[[bytes], None], on_eof: Callable[[], None]) -> None:
        self._on_data = on_data
        self._on_eof = on_eof
        self._loop.add_reader(self._master_fd, self._on_readable)

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, _READ_CHUNK)
        except BlockingIOError:
            return
        except OSError as e:
            if e.errno != errno.EIO:
                logger.debug("PTY read failed for pid %d: %s", self.pid, e)
            data = b""
        if data:
            if self._on_data:
                self._on_data(data)
            return
        self._loop.remove_reader(self._master_fd)
        on_eof, self._on_eof = self._on_eof, None
        if on_eof:
            on_eof()

    def write(self, data: bytes) -> None:
        if self._closed:
            return
        if self._write_buffer:
            self._write_buffer.extend(data)
            return
        try:
            written = os.write(self._master_fd, data)
        except BlockingIOError:
            written = 0
        if written < len(data):
            self._write_buffer.extend(data[written:])
            self._loop.add_writer(self._master_fd, self._flush)

    def _flush(self) -> None:
        try:
            written = os.write(self._master_fd, self._write_buffer)
        except BlockingIOError:
            return
        except OSError as e:
            logger.debug("PTY write failed for pid %d: %s", self.pid, e)
            written = len(self._write_buffer)
        del self._write_buffer[:written]
        if not self._write_buffer:
            self._loop.remove_writer(self._master_fd)

    def set_size(self, cols: int, rows: int) -> None:
        fcntl.ioctl(self._master_fd, termios.TIOCSWINSZ, _winsize(cols, rows))
        if self._proc.returncode is None:
            # The child is a session leader, so its pid is the group id.
            try:
                os.killpg(self.pid, signal.SIGWINCH)
            except (ProcessLookupError, PermissionError):
                pass

    async def wait(self) -> int | None:
        return await self._proc.wait()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._loop.remove_reader(self._master_fd)
        self._loop.remove_writer(self._master_fd)
        self._write_buffer.clear()
        try:
            os.close(self._master_fd)
        except OSError:
            pass


class PosixPtyBackend:
    """Spawns children as session leaders with the pty as controlling tty."""

    async def spawn(
        self,
        argv: Sequence[str],
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
    ) -> PtyProcess:
        master_fd, slave_fd = pty.openpty()
        fcntl.ioctl(slave_fd, termios.TIOCSWINSZ, _winsize(cols, rows))
        os.set_blocking(master_fd, False)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=env,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_make_controlling_tty,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)
        return PosixPtyProcess(proc, master_fd)


class WindowsPtyProcess:
    """pywinpty process; blocking reads run in a worker thread."""

    def __init__(self, proc) -> None:
        self._proc = proc
        self._reader: asyncio.Task | None = None
        self._closed = False
        self.pid = proc.pid

    @property
    def returncode(self) -> int | None:
        if self._proc.isalive():
            return None
        return self._proc.exitstatus

    def start(self, on_data: Callable[[bytes], None], on_eof: Callable[[], None]) -> None:
        self._reader = asyncio.ensure_future(self._read_loop(on_data, on_eof))

    async def _read_loop(self, on_data: Callable[[bytes], None], on_eof: Callable[[], None]) -> None:
        try:
            while not self._closed:
                try:
                    data = await asyncio.to_thread(self._proc.read, _READ_CHUNK)
                except EOFError:
                    break
                if data:
                    on_data(data if isinstance(data, bytes) else data.encode("utf-8"))
        finally:
            on_eof()

    def write(self, data: bytes) -> None:
        if not self._closed:
            self._proc.write(data)

    def set_size(self, cols: int, rows: int) -> None:
        self._proc.setwinsize(max(1, rows), max(1, cols))

    async def wait(self) -> int | None:
        while self._proc.isalive():
            await asyncio.sleep(_WINDOWS_POLL_INTERVAL)
        return self._proc.exitstatus

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._proc.close(force=False)
        except OSError as e:
            logger.debug("Closing ConPTY for pid %d failed: %s", self.pid, e)


class WindowsPtyBackend:
    async def spawn(
        self,
        argv: Sequence[str],
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
    ) -> PtyProcess:
        from winpty import PtyProcess as WinPtyProcess

        proc = await asyncio.to_thread(
            WinPtyProcess.spawn,
            list(argv),
            cwd=cwd,
            env=env,
            dimensions=(max(1, rows), max(1, cols)),
        )
        return WindowsPtyProcess(proc)


def get_pty_backend(platform: str | None = None) -> PtyBackend:
    platform = platform or sys.platform
    if platform == "win32":
        return WindowsPtyBackend()
    return PosixPtyBackend()
