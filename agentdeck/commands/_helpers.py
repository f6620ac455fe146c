"""Shared helpers for CLI commands."""

from __future__ import annotations

import asyncio

from agentdeck.config import load_config


def _run(coro):
    """Run an async function from sync context."""
    return asyncio.run(coro)


def get_socket_path() -> str:
    """Return the socket path from config or default."""
    config = load_config()
    return config.server.resolved_socket_path
