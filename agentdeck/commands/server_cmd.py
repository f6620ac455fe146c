"""CLI handlers for server commands: start, status."""

from __future__ import annotations

import asyncio
import os
import signal
import sys

import click

from agentdeck.commands._helpers import _run, get_socket_path


@click.group("server")
def server_group():
    """Run the local JSON-RPC server."""
    pass


@server_group.command("start")
def server_start():
    """Start the agentdeck server in the foreground."""
    if sys.platform == "win32":
        raise click.ClickException("The RPC server needs Unix domain sockets and is not available on Windows")

    async def _start():
        from agentdeck.context import AppContext
        from agentdeck.infra.rpc.server import RpcServer

        socket_path = get_socket_path()
        ctx = AppContext()
        rpc_server = RpcServer(ctx, socket_path)
        try:
            await rpc_server.start()
            click.echo(f"RPC server listening on {socket_path} (pid={os.getpid()})")

            # Wait for shutdown signal
            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for signum in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(signum, stop_event.set)

            await stop_event.wait()
            click.echo("\nShutting down...")
            await rpc_server.stop()
        finally:
            # Tears down every terminal's process tree
            await ctx.close()
            click.echo("Server stopped")

    _run(_start())


@server_group.command("status")
def server_status():
    """Check if the server is running."""

    async def _status():
        from agentdeck.infra.rpc.client import RpcClient

        client = RpcClient(get_socket_path())
        try:
            await client.connect()
            result = await client.call("server.status")
            click.echo("Server: running")
            if isinstance(result, dict):
                for key, value in result.items():
                    click.echo(f"  {key}: {value}")
        except (ConnectionRefusedError, FileNotFoundError, OSError):
            click.echo("Server: not running")
        finally:
            await client.close()

    _run(_status())
