"""JSON-RPC 2.0 message framing over newline-delimited JSON.

Requests use named params only. Server-pushed events (terminal output,
terminal exit, detection diagnostics) travel as notifications.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
# Implementation-defined: a typed AgentDeckError, kind in error.data
APPLICATION_ERROR = -32000

# Server -> client notifications
TERMINAL_DATA = "terminal.data"
TERMINAL_EXIT = "terminal.exit"
DETECT_LOG = "cli.detect_log"


@dataclass(frozen=True)
class JsonRpcRequest:
    method: str
    params: dict[str, Any] = field(default_factory=dict)
    id: int | str = 0

    def to_dict(self) -> dict:
        return {"jsonrpc": "2.0", "method": self.method, "params": self.params, "id": self.id}


@dataclass(frozen=True)
class JsonRpcResponse:
    """Success or error reply. id is None when the request could not be parsed."""

    id: int | str | None = 0
    result: Any = None
    error: dict | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def error_kind(self) -> str:
        """Typed error kind from error.data, or "" for untyped errors."""
        if not self.error:
            return ""
        data = self.error.get("data")
        return data.get("kind", "") if isinstance(data, dict) else ""

    def to_dict(self) -> dict:
        d: dict = {"jsonrpc": "2.0", "id": self.id}
        if self.error is not None:
            d["error"] = self.error
        else:
            d["result"] = self.result
        return d


@dataclass(frozen=True)
class JsonRpcNotification:
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"jsonrpc": "2.0", "method": self.method, "params": self.params}


JsonRpcMessage = Union[JsonRpcRequest, JsonRpcResponse, JsonRpcNotification]


def encode(msg: JsonRpcMessage) -> bytes:
    """One message per line; datetimes and paths fall back to str()."""
    return json.dumps(msg.to_dict(), default=str).encode() + b"\n"


def decode(line: bytes) -> JsonRpcMessage:
    """Parse one line into a message.

    Raises ValueError for invalid JSON, non-object payloads and positional
    params.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("JSON-RPC message must be an object")

    method = data.get("method")
    if method is None:
        return JsonRpcResponse(id=data.get("id"), result=data.get("result"), error=data.get("error"))

    if not isinstance(method, str):
        raise ValueError("method must be a string")
    params = data.get("params") or {}
    if not isinstance(params, dict):
        raise ValueError("Only named params are supported")
    if "id" in data:
        return JsonRpcRequest(method=method, params=params, id=data["id"])
    return JsonRpcNotification(method=method, params=params)


def make_error(id: int | str | None, code: int, message: str, kind: str | None = None) -> JsonRpcResponse:
    error: dict[str, Any] = {"code": code, "message": message}
    if kind is not None:
        error["data"] = {"kind": kind}
    return JsonRpcResponse(id=id, error=error)
