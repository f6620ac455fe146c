"""Terminal session domain model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from agentdeck.models.shell import ShellContext


class SessionState(str, Enum):
    RUNNING = "running"
    EXITED = "exited"
    DESTROYED = "destroyed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.EXITED, SessionState.DESTROYED)


@dataclass(frozen=True)
class PtySession:
    """Snapshot of a PTY-backed terminal session.

    The live process handle is owned by PtySessionManager and never exposed.
    """

    id: str
    cwd: str
    shell_context: ShellContext
    cols: int
    rows: int
    pid: int | None = None
    state: SessionState = SessionState.RUNNING
    exit_code: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
