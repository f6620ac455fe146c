"""Asyncio Unix socket JSON-RPC client."""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from typing import Any

from agentdeck.infra.rpc.protocol import (
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    decode,
    encode,
)

logger = logging.getLogger(__name__)


class RpcError(RuntimeError):
    """Error response from the server; kind mirrors error.data.kind."""

    def __init__(self, code: int, message: str, kind: str = "") -> None:
        self.code = code
        self.kind = kind
        super().__init__(f"RPC error {code}: {message}")


class RpcClient:
    """Asyncio Unix domain socket JSON-RPC 2.0 client.

    Notifications that arrive while waiting for a response are handed to
    on_notification (if set) and otherwise dropped.
    """

    def __init__(
        self,
        socket_path: str,
        on_notification: Callable[[JsonRpcNotification], None] | None = None,
    ) -> None:
        self._socket_path = socket_path
        self._on_notification = on_notification
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._id_counter = itertools.count(1)
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        """Connect to the server's Unix socket."""
        self._reader, self._writer = await asyncio.open_unix_connection(self._socket_path)
        logger.debug("Connected to RPC server at %s", self._socket_path)

    async def close(self) -> None:
        """Close the connection."""
        if self._writer:
            try:
                self._writer.close()
                await self._writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            self._writer = None
            self._reader = None
        logger.debug("RPC client disconnected")

    async def call(self, method: str, **params: Any) -> Any:
        """Send a JSON-RPC request and return the result.

        Raises RpcError on error responses.
        """
        async with self._lock:
            if not self.connected:
                await self.connect()
            assert self._reader is not None
            assert self._writer is not None

            req_id = next(self._id_counter)
            self._writer.write(encode(JsonRpcRequest(method=method, params=params, id=req_id)))
            await self._writer.drain()

            while True:
                line = await self._reader.readline()
                if not line:
                    raise ConnectionError("Server closed connection")
                msg = decode(line)
                if isinstance(msg, JsonRpcNotification):
                    if self._on_notification:
                        self._on_notification(msg)
                    continue
                if not isinstance(msg, JsonRpcResponse):
                    raise RuntimeError(f"Expected response, got {type(msg).__name__}")
                if msg.id != req_id:
                    logger.debug("Ignoring response for stale request %s", msg.id)
                    continue
                break

        if msg.is_error:
            error = msg.error or {}
            raise RpcError(error.get("code", 0), error.get("message", "Unknown error"), msg.error_kind)
        return msg.result
