"""RPC method registry: maps JSON-RPC method names to AppContext service calls."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from agentdeck.infra.rpc.serialization import (
    decode_terminal_input,
    deserialize_custom_agent,
    deserialize_shell_config,
    serialize_commit,
    serialize_detection_result,
    serialize_file_status,
    serialize_pty_session,
    serialize_shell_info,
    serialize_workdir,
)
from agentdeck.infra.shell import wrap_login_command
from agentdeck.models.shell import ShellContext

if TYPE_CHECKING:
    from agentdeck.context import AppContext

logger = logging.getLogger(__name__)


class MethodRegistry:
    """Dispatch table mapping RPC method names to service calls."""

    def __init__(self, ctx: AppContext) -> None:
        self._ctx = ctx
        self._methods: dict[str, Any] = {}
        self._register_all()

    def _register_all(self) -> None:
        """Register all RPC methods."""
        # Server
        self._methods["server.ping"] = self._server_ping
        self._methods["server.status"] = self._server_status

        # CLI detection
        self._methods["cli.detect"] = self._cli_detect
        self._methods["cli.detect_one"] = self._cli_detect_one

        # Shell
        self._methods["shell.detect"] = self._shell_detect
        self._methods["shell.resolve"] = self._shell_resolve

        # Terminal
        self._methods["terminal.create"] = self._terminal_create
        self._methods["terminal.write"] = self._terminal_write
        self._methods["terminal.resize"] = self._terminal_resize
        self._methods["terminal.destroy"] = self._terminal_destroy
        self._methods["terminal.list"] = self._terminal_list

        # Git
        self._methods["git.authorize_workdir"] = self._git_authorize_workdir
        self._methods["git.unauthorize_workdir"] = self._git_unauthorize_workdir
        self._methods["git.status"] = self._git_status
        self._methods["git.log"] = self._git_log
        self._methods["git.init"] = self._git_init
        self._methods["git.branches"] = self._git_branches
        self._methods["git.diff"] = self._git_diff
        self._methods["git.stage"] = self._git_stage
        self._methods["git.unstage"] = self._git_unstage
        self._methods["git.commit"] = self._git_commit

        # Temporary workspaces
        self._methods["workspace.create_temp"] = self._workspace_create_temp
        self._methods["workspace.remove_temp"] = self._workspace_remove_temp
        self._methods["workspace.check_path"] = self._workspace_check_path

    @staticmethod
    def _validate_str(params: dict, key: str, required: bool = True) -> None:
        """Validate that a string param exists and is non-empty."""
        val = params.get(key)
        if required and (val is None or not isinstance(val, str) or not val.strip()):
            raise ValueError(f"Missing or empty required parameter: {key}")

    @staticmethod
    def _validate_paths(params: dict) -> list[str]:
        paths = params.get("paths")
        if not isinstance(paths, list) or not all(isinstance(p, str) and p for p in paths):
            raise ValueError("paths must be a list of non-empty strings")
        return paths

    @staticmethod
    def _validate_size(params: dict) -> tuple[int | None, int | None]:
        cols, rows = params.get("cols"), params.get("rows")
        for key, value in (("cols", cols), ("rows", rows)):
            if value is not None and (not isinstance(value, int) or isinstance(value, bool) or value < 1):
                raise ValueError(f"{key} must be a positive integer")
        return cols, rows

    async def dispatch(self, method: str, params: dict) -> Any:
        """Dispatch an RPC method call. Returns serializable result."""
        handler = self._methods.get(method)
        if handler is None:
            raise ValueError(f"Unknown method: {method}")
        return await handler(params)

    def has_method(self, method: str) -> bool:
        return method in self._methods

    # --- Server ---

    async def _server_ping(self, params: dict) -> str:
        return "pong"

    async def _server_status(self, params: dict) -> dict:
        return {
            "status": "running",
            "terminals": len(self._ctx.pty_manager.list_sessions()),
            "debug_cli_detect": self._ctx.config.debug_cli_detect,
            "packaged": self._ctx.config.packaged,
        }

    # --- CLI detection ---

    async def _cli_detect(self, params: dict) -> list[dict]:
        custom_agents = [deserialize_custom_agent(a) for a in params.get("custom_agents") or []]
        results = await self._ctx.detector.detect_all(
            custom_agents=custom_agents,
            force_refresh=bool(params.get("force_refresh", False)),
            custom_paths=params.get("custom_paths") or None,
        )
        return [serialize_detection_result(r) for r in results]

    async def _cli_detect_one(self, params: dict) -> dict:
        self._validate_str(params, "agent_id")
        custom = params.get("custom_agent")
        result = await self._ctx.detector.detect_one(
            params["agent_id"],
            custom_agent=deserialize_custom_agent(custom) if custom else None,
            custom_path=params.get("custom_path") or "",
            force_refresh=bool(params.get("force_refresh", False)),
        )
        return serialize_detection_result(result)

    # --- Shell ---

    async def _shell_detect(self, params: dict) -> list[dict]:
        return [serialize_shell_info(s) for s in self._ctx.shell_resolver.detect_shells()]

    async def _shell_resolve(self, params: dict) -> dict:
        config = deserialize_shell_config(params.get("shell_config"))
        shell, exec_args = self._ctx.shell_resolver.resolve_for_command(config)
        result = {"shell": shell, "exec_args": exec_args}
        command = params.get("command")
        if command is not None and not isinstance(command, str):
            raise ValueError("command must be a string")
        if command:
            result["command_line"] = wrap_login_command(ShellContext(shell, tuple(exec_args)), command)
        return result

    # --- Terminal ---

    def _terminal_shell_context(self, params: dict) -> ShellContext:
        resolver = self._ctx.shell_resolver
        shell = params.get("shell")
        if shell:
            return ShellContext(
                executable_path=shell,
                argv_prefix=tuple(params.get("args") or ()),
                environment=resolver.environment_for_command(),
            )
        return resolver.resolve_interactive(deserialize_shell_config(params.get("shell_config")))

    async def _terminal_create(self, params: dict) -> dict:
        self._validate_str(params, "cwd")
        cols, rows = self._validate_size(params)
        session_id = await self._ctx.pty_manager.create(
            params["cwd"],
            shell_context=self._terminal_shell_context(params),
            cols=cols,
            rows=rows,
            env=params.get("env") or None,
        )
        return {"id": session_id}

    async def _terminal_write(self, params: dict) -> bool:
        self._validate_str(params, "id")
        self._ctx.pty_manager.write(params["id"], decode_terminal_input(params))
        return True

    async def _terminal_resize(self, params: dict) -> bool:
        self._validate_str(params, "id")
        cols, rows = self._validate_size(params)
        if cols is None or rows is None:
            raise ValueError("cols and rows are required")
        return self._ctx.pty_manager.resize(params["id"], cols, rows)

    async def _terminal_destroy(self, params: dict) -> bool:
        self._validate_str(params, "id")
        return self._ctx.pty_manager.destroy(params["id"]) is not None

    async def _terminal_list(self, params: dict) -> list[dict]:
        return [serialize_pty_session(s) for s in self._ctx.pty_manager.list_sessions()]

    # --- Git ---

    async def _git_authorize_workdir(self, params: dict) -> str:
        self._validate_str(params, "path")
        return self._ctx.git_registry.register_authorized(params["path"])

    async def _git_unauthorize_workdir(self, params: dict) -> bool:
        self._validate_str(params, "path")
        self._ctx.git_registry.unregister_authorized(params["path"])
        return True

    async def _git_status(self, params: dict) -> dict:
        self._validate_str(params, "path")
        context = self._ctx.git_registry.get_or_create_context(params["path"])
        entries = await context.git.status()
        branch = await context.git.current_branch()
        return {
            "workdir": serialize_workdir(context),
            "branch": branch,
            "files": [serialize_file_status(e) for e in entries],
        }

    async def _git_log(self, params: dict) -> list[dict]:
        self._validate_str(params, "path")
        max_count = params.get("max_count", 50)
        if not isinstance(max_count, int) or max_count < 1:
            raise ValueError("max_count must be a positive integer")
        context = self._ctx.git_registry.get_or_create_context(params["path"])
        commits = await context.git.log(max_count=max_count)
        return [serialize_commit(c) for c in commits]

    async def _git_init(self, params: dict) -> dict:
        self._validate_str(params, "path")
        context = await self._ctx.git_registry.init_repository(params["path"])
        return serialize_workdir(context)

    async def _git_branches(self, params: dict) -> dict:
        self._validate_str(params, "path")
        context = self._ctx.git_registry.get_or_create_context(params["path"])
        return {
            "current": await context.git.current_branch(),
            "branches": await context.git.branches(),
        }

    async def _git_diff(self, params: dict) -> str:
        self._validate_str(params, "path")
        max_chars = params.get("max_chars", 100_000)
        if not isinstance(max_chars, int) or isinstance(max_chars, bool) or max_chars < 1:
            raise ValueError("max_chars must be a positive integer")
        context = self._ctx.git_registry.get_or_create_context(params["path"])
        return await context.git.diff(staged=bool(params.get("staged", False)), max_chars=max_chars)

    async def _git_stage(self, params: dict) -> bool:
        self._validate_str(params, "path")
        paths = self._validate_paths(params)
        context = self._ctx.git_registry.get_or_create_context(params["path"])
        await context.git.stage(paths)
        return True

    async def _git_unstage(self, params: dict) -> bool:
        self._validate_str(params, "path")
        paths = self._validate_paths(params)
        context = self._ctx.git_registry.get_or_create_context(params["path"])
        await context.git.unstage(paths)
        return True

    async def _git_commit(self, params: dict) -> dict:
        self._validate_str(params, "path")
        self._validate_str(params, "message")
        context = self._ctx.git_registry.get_or_create_context(params["path"])
        return {"sha": await context.git.commit(params["message"])}

    # --- Temporary workspaces ---

    async def _workspace_create_temp(self, params: dict) -> dict:
        self._validate_str(params, "base_path", required=False)
        path = await self._ctx.temp_workspaces.create(params.get("base_path") or None)
        return {"path": path}

    async def _workspace_remove_temp(self, params: dict) -> bool:
        self._validate_str(params, "path")
        await self._ctx.temp_workspaces.remove(params["path"])
        return True

    async def _workspace_check_path(self, params: dict) -> dict:
        self._validate_str(params, "path")
        return {"path": params["path"], "writable": self._ctx.temp_workspaces.check_writable(params["path"])}
