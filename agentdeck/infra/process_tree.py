"""Process-tree teardown with per-platform backends.

Every process we spawn is started as the leader of its own session (POSIX)
or as the root of a job tree (Windows). On POSIX a shell with job control
moves each background job into a process group of its own, so the leader's
group alone does not reach everything: the killer signals every group that
has a member in the leader's session or below the leader.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
from collections.abc import Callable
from typing import Protocol

import psutil

logger = logging.getLogger(__name__)


class ProcessTreeKiller(Protocol):
    """Capability to signal a spawned process together with its descendants."""

    def kill(self, pid: int, force: bool = False, leader_alive: bool = True) -> bool:
        """Signal the tree rooted at pid. Returns False if nothing was there.

        With ``leader_alive=False`` the root has already been reaped and only
        what it left behind is signalled.
        """
        ...

    def has_survivors(self, pid: int) -> bool:
        """True while processes left behind by the reaped root pid still run."""
        ...


def _running(proc: psutil.Process) -> bool:
    try:
        return proc.status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False


class PosixProcessTreeKiller:
    """Signals every process group found in the leader's session or tree."""

    def members(self, pid: int) -> set[int]:
        """Live pids in the session led by pid, plus any descendants that left it."""
        found: set[int] = set()
        try:
            found.update(child.pid for child in psutil.Process(pid).children(recursive=True) if _running(child))
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass
        for proc in psutil.process_iter():
            try:
                if os.getsid(proc.pid) == pid and _running(proc):
                    found.add(proc.pid)
            except OSError:
                continue
        return found

    def kill(self, pid: int, force: bool = False, leader_alive: bool = True) -> bool:
        sig = signal.SIGKILL if force else signal.SIGTERM
        # Snapshot before signalling: once the leader dies its children are
        # reparented and no longer show up below it.
        targets = self.members(pid)
        groups = {pid} if leader_alive else set()
        for member in targets:
            try:
                groups.add(os.getpgid(member))
            except ProcessLookupError:
                continue
        groups.discard(os.getpgrp())

        sent = False
        for pgid in sorted(groups):
            sent = self.signal_group(pgid, sig) or sent
        if len(groups) > 1:
            logger.debug("Sent %s to %d process groups of session %d", sig.name, len(groups), pid)
        return sent

    def has_survivors(self, pid: int) -> bool:
        return bool(self.members(pid))

    @staticmethod
    def signal_group(pid: int, sig: int) -> bool:
        try:
            os.killpg(pid, sig)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            # Group leader gone and pgid reused by someone else's group
            logger.debug("Not permitted to signal process group %d", pid)
            return False


class WindowsProcessTreeKiller:
    """Uses ``taskkill /T`` which walks the parent/child tree itself."""

    def __init__(self, run: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> None:
        self._run = run

    def kill(self, pid: int, force: bool = False, leader_alive: bool = True) -> bool:
        if not leader_alive:
            # taskkill cannot find orphans by their old root and the pid may be reused
            return False
        args = ["taskkill", "/PID", str(pid), "/T"]
        if force:
            args.append("/F")
        try:
            result = self._run(
                args,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
                timeout=10,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("taskkill failed for pid %d: %s", pid, e)
            return False
        return result.returncode == 0

    def has_survivors(self, pid: int) -> bool:
        return False


def get_process_tree_killer(platform: str | None = None) -> ProcessTreeKiller:
    """Return the teardown backend for the given (or current) platform."""
    platform = platform or sys.platform
    if platform == "win32":
        return WindowsProcessTreeKiller()
    return PosixProcessTreeKiller()


def kill_process_tree(pid: int, force: bool = False, platform: str | None = None) -> bool:
    """Terminate (or force-kill) a process and all of its descendants."""
    return get_process_tree_killer(platform).kill(pid, force=force)
