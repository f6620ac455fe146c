"""Model <-> JSON conversion for RPC transport."""

from __future__ import annotations

import base64
from datetime import datetime
from typing import Any

from agentdeck.infra.detect_log import DetectLogRecord
from agentdeck.infra.git import GitCommit, GitFileStatus
from agentdeck.models.agent import DEFAULT_VERSION_FLAG, DEFAULT_VERSION_PATTERN, CustomAgent, DetectionResult
from agentdeck.models.shell import ShellConfig, ShellInfo
from agentdeck.models.terminal import PtySession
from agentdeck.models.workdir import GitWorkdirContext


def _dt_to_str(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


# --- Detection ---

def serialize_detection_result(result: DetectionResult) -> dict:
    return {
        "id": result.id,
        "name": result.display_name,
        "command": result.command,
        "installed": result.installed,
        "version": result.version,
        "is_builtin": result.is_builtin,
        "environment": result.environment.value if result.environment else None,
        "timed_out": result.timed_out,
        "confidence": result.confidence.value,
        "detected_at": _dt_to_str(result.detected_at),
    }


def deserialize_custom_agent(data: dict[str, Any]) -> CustomAgent:
    for key in ("id", "name", "command"):
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Custom agent is missing {key}")
    return CustomAgent(
        id=data["id"],
        name=data["name"],
        command=data["command"],
        version_flag=data.get("version_flag") or DEFAULT_VERSION_FLAG,
        version_pattern=data.get("version_pattern", DEFAULT_VERSION_PATTERN),
    )


def serialize_detect_log_record(record: DetectLogRecord) -> dict:
    return record.to_dict()


# --- Shell ---

def serialize_shell_info(info: ShellInfo) -> dict:
    return {
        "id": info.id,
        "name": info.name,
        "path": info.path,
        "available": info.available,
        "is_wsl": info.is_wsl,
    }


def deserialize_shell_config(data: dict[str, Any] | None) -> ShellConfig:
    return ShellConfig.from_dict(data)


# --- Terminal ---

def serialize_pty_session(session: PtySession) -> dict:
    return {
        "id": session.id,
        "cwd": session.cwd,
        "shell": session.shell_context.executable_path,
        "args": list(session.shell_context.argv_prefix),
        "cols": session.cols,
        "rows": session.rows,
        "pid": session.pid,
        "state": session.state.value,
        "exit_code": session.exit_code,
        "created_at": _dt_to_str(session.created_at),
    }


def encode_terminal_data(data: bytes) -> dict:
    """Terminal output as text when it decodes cleanly, else base64."""
    try:
        return {"data": data.decode("utf-8"), "encoding": "utf-8"}
    except UnicodeDecodeError:
        return {"data": base64.b64encode(data).decode("ascii"), "encoding": "base64"}


def decode_terminal_input(params: dict[str, Any]) -> bytes:
    data = params.get("data", "")
    if not isinstance(data, str):
        raise ValueError("data must be a string")
    if params.get("encoding") == "base64":
        return base64.b64decode(data)
    return data.encode("utf-8")


# --- Git ---

def serialize_workdir(context: GitWorkdirContext) -> dict:
    return {
        "path": context.resolved_path,
        "name": context.display_name,
        "authorized": context.authorized,
        "created_at": _dt_to_str(context.created_at),
    }


def serialize_file_status(entry: GitFileStatus) -> dict:
    return {
        "path": entry.path,
        "index": entry.index,
        "worktree": entry.worktree,
        "original_path": entry.original_path,
        "untracked": entry.untracked,
    }


def serialize_commit(commit: GitCommit) -> dict:
    return {
        "sha": commit.sha,
        "author": commit.author,
        "date": commit.date,
        "subject": commit.subject,
    }
