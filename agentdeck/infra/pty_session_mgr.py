"""PTY session manager: spawning, output fan-out, resize, process-tree teardown."""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from agentdeck.config import TerminalConfig
from agentdeck.errors import SpawnError, UnknownSession
from agentdeck.infra.events import ObserverHub, Subscription
from agentdeck.infra.process_tree import ProcessTreeKiller, get_process_tree_killer
from agentdeck.infra.pty_backends import PtyBackend, PtyProcess, get_pty_backend
from agentdeck.infra.shell import ShellResolver
from agentdeck.models.agent import CommandSpec
from agentdeck.models.shell import ShellContext
from agentdeck.models.terminal import PtySession, SessionState

logger = logging.getLogger(__name__)

DataObserver = Callable[[str, bytes], None]
ExitObserver = Callable[[str, "int | None"], None]

# How long to keep draining output after the child has been reaped.
_DRAIN_GRACE = 0.5
# How long to wait for the process to be reaped after a force kill.
_FORCE_KILL_WAIT = 5.0
# Poll interval while waiting for leftover descendants to go away.
_SURVIVOR_POLL = 0.05


@dataclass
class _LiveSession:
    """Mutable bookkeeping for one session. Never leaves the manager."""

    id: str
    cwd: str
    shell_context: ShellContext
    cols: int
    rows: int
    process: PtyProcess
    state: SessionState = SessionState.RUNNING
    exit_code: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    output_done: asyncio.Event = field(default_factory=asyncio.Event)
    reaped: asyncio.Event = field(default_factory=asyncio.Event)

    def snapshot(self) -> PtySession:
        return PtySession(
            id=self.id,
            cwd=self.cwd,
            shell_context=self.shell_context,
            cols=self.cols,
            rows=self.rows,
            pid=self.process.pid,
            state=self.state,
            exit_code=self.exit_code,
            created_at=self.created_at,
        )


class PtySessionManager:
    """Owns every interactive terminal session and its process tree.

    Sessions go running -> exited when the child ends on its own, or
    running -> destroyed when destroy() is called. Either way the id is
    retired and never accepted again. write() and resize() on an id that is
    not running raise UnknownSession; destroy() on such an id is a no-op.
    """

    def __init__(
        self,
        shell_resolver: ShellResolver | None = None,
        config: TerminalConfig | None = None,
        killer: ProcessTreeKiller | None = None,
        backend: PtyBackend | None = None,
    ) -> None:
        self._resolver = shell_resolver or ShellResolver()
        self._config = config or TerminalConfig()
        self._killer = killer or get_process_tree_killer()
        self._backend = backend or get_pty_backend()
        self._sessions: dict[str, _LiveSession] = {}
        self._retired: set[str] = set()
        self._watchers: dict[str, asyncio.Task] = {}
        self._teardowns: set[asyncio.Task] = set()
        self._data_observers: ObserverHub[str] = ObserverHub()
        self._exit_observers: ObserverHub[str] = ObserverHub()

    # --- creation ---

    async def create(
        self,
        cwd: str,
        shell_context: ShellContext | None = None,
        command: CommandSpec | None = None,
        cols: int | None = None,
        rows: int | None = None,
        env: Mapping[str, str] | None = None,
        session_id: str | None = None,
    ) -> str:
        """Start a shell (or a direct command) on a new PTY and return its id.

        Raises SpawnError if the working directory or executable is unusable,
        and ValueError if session_id is already live or was used before.
        """
        session_id = session_id or uuid.uuid4().hex
        if session_id in self._sessions or session_id in self._retired:
            raise ValueError(f"Terminal session id already used: {session_id}")

        cols = max(1, cols or self._config.default_cols)
        rows = max(1, rows or self._config.default_rows)

        if command is not None:
            cwd = command.cwd or cwd
            context = ShellContext(
                executable_path=command.program,
                argv_prefix=command.args,
                environment=self._resolver.environment_for_command(extra=command.env),
            )
        else:
            context = shell_context or self._resolver.resolve_interactive()
        context = context.with_env(env)

        environment = dict(context.environment)
        environment.setdefault("TERM", self._config.term)
        argv = [context.executable_path, *context.argv_prefix]

        if not os.path.isdir(cwd):
            raise SpawnError(context.executable_path, f"working directory does not exist: {cwd}")

        try:
            process = await self._backend.spawn(argv, cwd, environment, cols, rows)
        except OSError as e:
            raise SpawnError(context.executable_path, str(e)) from e

        session = _LiveSession(
            id=session_id,
            cwd=cwd,
            shell_context=context,
            cols=cols,
            rows=rows,
            process=process,
        )
        self._sessions[session_id] = session
        process.start(
            lambda data: self._on_output(session, data),
            session.output_done.set,
        )
        self._watchers[session_id] = asyncio.ensure_future(self._watch(session))
        logger.info("Created terminal %s (pid %d) in %s: %s", session_id, process.pid, cwd, argv)
        return session_id

    # --- I/O ---

    def _live(self, session_id: str) -> _LiveSession:
        session = self._sessions.get(session_id)
        if session is None or session.state is not SessionState.RUNNING:
            raise UnknownSession(session_id)
        return session

    def write(self, session_id: str, data: bytes | str) -> None:
        """Forward raw input to the session's terminal."""
        session = self._live(session_id)
        if isinstance(data, str):
            data = data.encode("utf-8")
        session.process.write(data)

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        """Change the terminal size. Returns False when the size is unchanged."""
        session = self._live(session_id)
        cols, rows = max(1, cols), max(1, rows)
        if (cols, rows) == (session.cols, session.rows):
            return False
        session.process.set_size(cols, rows)
        session.cols, session.rows = cols, rows
        return True

    def _on_output(self, session: _LiveSession, data: bytes) -> None:
        if session.state is SessionState.DESTROYED:
            return
        self._data_observers.emit(session.id, session.id, data)

    # --- observers ---

    def subscribe(
        self,
        session_id: str,
        on_data: DataObserver,
        on_exit: ExitObserver | None = None,
    ) -> Subscription:
        """Observe one session. Callbacks receive the session id first."""
        self._live(session_id)
        return self._subscribe(session_id, on_data, on_exit)

    def subscribe_all(self, on_data: DataObserver, on_exit: ExitObserver | None = None) -> Subscription:
        """Observe every session, including ones created later."""
        return self._subscribe(None, on_data, on_exit)

    def _subscribe(self, key: str | None, on_data: DataObserver, on_exit: ExitObserver | None) -> Subscription:
        subscriptions = [self._data_observers.subscribe(key, on_data)]
        if on_exit is not None:
            subscriptions.append(self._exit_observers.subscribe(key, on_exit))

        def _dispose_all() -> None:
            for subscription in subscriptions:
                subscription.dispose()

        return Subscription(_dispose_all)

    # --- lifecycle ---

    async def _watch(self, session: _LiveSession) -> None:
        """Wait for the child to exit, drain its output, then notify once."""
        code = None
        try:
            try:
                code = await session.process.wait()
            except Exception:
                logger.exception("Waiting on terminal %s (pid %d) failed", session.id, session.process.pid)
            session.reaped.set()
            try:
                await asyncio.wait_for(session.output_done.wait(), timeout=_DRAIN_GRACE)
            except asyncio.TimeoutError:
                pass
        finally:
            session.reaped.set()
            self._watchers.pop(session.id, None)

        session.exit_code = code
        if session.state is SessionState.RUNNING:
            session.state = SessionState.EXITED
            self._retire(session)
            logger.info("Terminal %s exited with code %s", session.id, code)

        session.process.close()
        self._exit_observers.emit(session.id, session.id, code)
        self._data_observers.discard(session.id)
        self._exit_observers.discard(session.id)

    def _retire(self, session: _LiveSession) -> None:
        self._sessions.pop(session.id, None)
        self._retired.add(session.id)

    def destroy(self, session_id: str) -> asyncio.Task | None:
        """Mark the session destroyed now and tear its process tree down.

        Returns the teardown task, or None when there was nothing to do.
        Safe to call any number of times.
        """
        session = self._sessions.get(session_id)
        if session is None or session.state is not SessionState.RUNNING:
            return None
        session.state = SessionState.DESTROYED
        self._retire(session)
        logger.info("Destroying terminal %s (pid %d)", session_id, session.process.pid)

        task = asyncio.ensure_future(self._teardown(session))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)
        return task

    async def _teardown(self, session: _LiveSession) -> None:
        pid = session.process.pid
        # Background jobs can outlive the leader, so the tree is signalled
        # even when the leader has already been reaped.
        await asyncio.to_thread(self._killer.kill, pid, False, not session.reaped.is_set())
        if not await self._wait_gone(session, self._config.kill_grace_period):
            logger.warning("Terminal %s ignored termination, force killing %d", session.id, pid)
            await asyncio.to_thread(self._killer.kill, pid, True, not session.reaped.is_set())
            if not await self._wait_gone(session, _FORCE_KILL_WAIT):
                logger.error("Terminal %s (pid %d) survived a force kill", session.id, pid)

        watcher = self._watchers.get(session.id)
        if watcher is not None:
            await asyncio.gather(watcher, return_exceptions=True)

    async def _wait_gone(self, session: _LiveSession, timeout: float) -> bool:
        """Wait until the leader is reaped and nothing it left behind still runs."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if session.reaped.is_set() and not await asyncio.to_thread(self._killer.has_survivors, session.process.pid):
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            if session.reaped.is_set():
                await asyncio.sleep(min(remaining, _SURVIVOR_POLL))
                continue
            try:
                await asyncio.wait_for(session.reaped.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    def destroy_by_workdir(self, workdir: str) -> list[asyncio.Task]:
        """Destroy every session whose cwd is workdir or lies beneath it."""
        root = Path(workdir).resolve()
        tasks = []
        for session in list(self._sessions.values()):
            cwd = Path(session.cwd).resolve()
            if cwd == root or root in cwd.parents:
                task = self.destroy(session.id)
                if task is not None:
                    tasks.append(task)
        return tasks

    def destroy_all(self) -> list[asyncio.Task]:
        tasks = []
        for session_id in list(self._sessions):
            task = self.destroy(session_id)
            if task is not None:
                tasks.append(task)
        return tasks

    async def wait_closed(self) -> None:
        """Wait for every pending teardown to finish."""
        if self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)

    # --- queries ---

    def get(self, session_id: str) -> PtySession | None:
        session = self._sessions.get(session_id)
        return session.snapshot() if session else None

    def list_sessions(self) -> list[PtySession]:
        return [session.snapshot() for session in self._sessions.values()]

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
