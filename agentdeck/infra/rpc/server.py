"""Asyncio Unix socket JSON-RPC server with terminal/detection notifications."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING

from agentdeck.errors import AgentDeckError
from agentdeck.infra.events import Subscription
from agentdeck.infra.rpc.methods import MethodRegistry
from agentdeck.infra.rpc.protocol import (
    APPLICATION_ERROR,
    DETECT_LOG,
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    TERMINAL_DATA,
    TERMINAL_EXIT,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    decode,
    encode,
    make_error,
)
from agentdeck.infra.rpc.serialization import encode_terminal_data, serialize_detect_log_record

if TYPE_CHECKING:
    from agentdeck.context import AppContext
    from agentdeck.infra.detect_log import DetectLogRecord

logger = logging.getLogger(__name__)

# Unread notification bytes a client may fall behind by before it is dropped.
MAX_CLIENT_BUFFER = 4 * 1024 * 1024


def error_response(msg_id: int | str | None, method: str, exc: Exception) -> JsonRpcResponse:
    """Map an exception raised by a method handler to a JSON-RPC error."""
    if isinstance(exc, AgentDeckError):
        return make_error(msg_id, APPLICATION_ERROR, str(exc), kind=exc.kind)
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return make_error(msg_id, INVALID_PARAMS, str(exc), kind="invalid_params")
    logger.exception("Error dispatching %s", method)
    return make_error(msg_id, INTERNAL_ERROR, str(exc), kind="internal")


class RpcServer:
    """Asyncio Unix domain socket JSON-RPC 2.0 server.

    Besides request/response traffic, every connected client receives
    terminal.data, terminal.exit and cli.detect_log notifications.
    """

    def __init__(self, ctx: AppContext, socket_path: str, max_client_buffer: int = MAX_CLIENT_BUFFER) -> None:
        self._ctx = ctx
        self._socket_path = socket_path
        self._max_client_buffer = max_client_buffer
        self._registry = MethodRegistry(ctx)
        self._server: asyncio.Server | None = None
        # Each writer maps to the lock serialising its responses
        self._clients: dict[asyncio.StreamWriter, asyncio.Lock] = {}
        self._requests: set[asyncio.Task] = set()
        self._subscriptions: list[Subscription] = []

    @property
    def socket_path(self) -> str:
        return self._socket_path

    async def start(self) -> None:
        """Start listening on the Unix socket."""
        # Remove stale socket file
        try:
            os.unlink(self._socket_path)
        except FileNotFoundError:
            pass

        self._server = await asyncio.start_unix_server(
            self._handle_client,
            path=self._socket_path,
        )
        # Make socket accessible to the user only
        os.chmod(self._socket_path, 0o600)

        self._subscriptions = [
            self._ctx.pty_manager.subscribe_all(self._on_terminal_data, self._on_terminal_exit),
            self._ctx.detect_log.subscribe(self._on_detect_log),
        ]
        logger.info("RPC server listening on %s", self._socket_path)

    async def stop(self) -> None:
        """Stop the server and clean up the socket file."""
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []

        if self._server:
            self._server.close()
            for writer in list(self._clients):
                writer.close()
            for task in list(self._requests):
                task.cancel()
            await self._server.wait_closed()
            self._server = None

        try:
            os.unlink(self._socket_path)
        except FileNotFoundError:
            pass
        logger.info("RPC server stopped")

    # --- notifications ---

    def broadcast(self, method: str, params: dict) -> None:
        if not self._clients:
            return
        line = encode(JsonRpcNotification(method=method, params=params))
        for writer in list(self._clients):
            if writer.is_closing():
                self._clients.pop(writer, None)
                continue
            buffered = writer.transport.get_write_buffer_size()
            if buffered > self._max_client_buffer:
                logger.warning(
                    "Dropping client %s: %d bytes of notifications unread",
                    writer.get_extra_info("peername") or "unix",
                    buffered,
                )
                self._clients.pop(writer, None)
                writer.transport.abort()
                continue
            writer.write(line)

    def _on_terminal_data(self, session_id: str, data: bytes) -> None:
        self.broadcast(TERMINAL_DATA, {"id": session_id, **encode_terminal_data(data)})

    def _on_terminal_exit(self, session_id: str, code: int | None) -> None:
        self.broadcast(TERMINAL_EXIT, {"id": session_id, "code": code})

    def _on_detect_log(self, record: DetectLogRecord) -> None:
        self.broadcast(DETECT_LOG, serialize_detect_log_record(record))

    # --- connections ---

    async def _send(self, writer: asyncio.StreamWriter, resp: JsonRpcResponse) -> None:
        lock = self._clients.get(writer)
        if lock is None:
            return  # dropped or disconnected
        async with lock:
            writer.write(encode(resp))
            await writer.drain()

    async def _respond(self, writer: asyncio.StreamWriter, msg: JsonRpcRequest) -> None:
        try:
            result = await self._registry.dispatch(msg.method, msg.params)
            resp = JsonRpcResponse(id=msg.id, result=result)
        except Exception as e:
            resp = error_response(msg.id, msg.method, e)
        try:
            await self._send(writer, resp)
        except (ConnectionError, OSError):
            logger.debug("Client went away before the %s response was sent", msg.method)

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle a single client connection.

        Each request runs as its own task so a slow method never holds up
        the requests queued behind it; responses carry the request id.
        """
        peer = writer.get_extra_info("peername") or "unix"
        logger.debug("Client connected: %s", peer)
        self._clients[writer] = asyncio.Lock()

        try:
            while True:
                line = await reader.readline()
                if not line:
                    break  # Client disconnected

                try:
                    msg = decode(line)
                except ValueError:
                    await self._send(writer, make_error(None, PARSE_ERROR, "Parse error"))
                    continue

                if isinstance(msg, JsonRpcNotification):
                    # Notifications don't get responses
                    continue

                if not isinstance(msg, JsonRpcRequest):
                    await self._send(writer, make_error(None, INVALID_REQUEST, "Invalid request"))
                    continue

                if not self._registry.has_method(msg.method):
                    await self._send(writer, make_error(msg.id, METHOD_NOT_FOUND, f"Method not found: {msg.method}"))
                    continue

                task = asyncio.ensure_future(self._respond(writer, msg))
                self._requests.add(task)
                task.add_done_callback(self._requests.discard)

        except asyncio.CancelledError:
            pass
        except ConnectionResetError:
            logger.debug("Client reset connection: %s", peer)
        except Exception:
            logger.exception("Error handling client %s", peer)
        finally:
            # In-flight requests run to completion; their responses are dropped
            self._clients.pop(writer, None)
            try:
                writer.close()
                await writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            logger.debug("Client disconnected: %s", peer)
