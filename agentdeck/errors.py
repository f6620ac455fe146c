"""Error taxonomy for process orchestration."""

from __future__ import annotations


class AgentDeckError(Exception):
    """Base class for all orchestration errors."""

    kind = "error"


class SpawnError(AgentDeckError):
    """The executable could not be launched at all."""

    kind = "spawn_error"

    def __init__(self, executable: str, reason: str = "") -> None:
        self.executable = executable
        self.reason = reason
        message = f"Failed to launch {executable}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CommandTimeout(AgentDeckError):
    """The process did not complete within its time budget."""

    kind = "timeout"

    def __init__(self, command: str, timeout: float, output: str = "") -> None:
        self.command = command
        self.timeout = timeout
        self.output = output
        super().__init__(f"Command timed out after {timeout:g}s: {command}")


class NonZeroExit(AgentDeckError):
    """The process ran and exited with a failure code."""

    kind = "non_zero_exit"

    def __init__(self, command: str, code: int, stderr: str = "", stdout: str = "") -> None:
        self.command = command
        self.code = code
        self.stderr = stderr
        self.stdout = stdout
        detail = stderr.strip().splitlines()[0] if stderr.strip() else ""
        message = f"Command exited with code {code}: {command}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class UnauthorizedWorkdir(AgentDeckError):
    """A Git operation was attempted against an unverified path."""

    kind = "unauthorized_workdir"

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid workdir: {reason}")


class UnknownSession(AgentDeckError):
    """Operation on a PTY session id that does not exist or is gone."""

    kind = "unknown_session"

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Unknown terminal session: {session_id}")
