"""Tests for shell config/context and terminal session models."""

import pytest

from agentdeck.models.shell import ShellConfig, ShellContext, ShellType
from agentdeck.models.terminal import SessionState


class TestShellConfig:
    def test_from_dict(self):
        config = ShellConfig.from_dict(
            {"shell_type": "custom", "custom_path": "/usr/bin/fish", "custom_args": ["-l", "-c"]}
        )
        assert config.shell_type is ShellType.CUSTOM
        assert config.custom_path == "/usr/bin/fish"
        assert config.custom_args == ("-l", "-c")

    def test_from_empty(self):
        assert ShellConfig.from_dict(None) == ShellConfig()

    def test_invalid_type(self):
        with pytest.raises(ValueError):
            ShellConfig.from_dict({"shell_type": "tcsh"})


class TestShellContext:
    def test_path_key_always_present(self):
        context = ShellContext("/bin/sh", ["-c"], {})
        assert context.path == ""
        assert context.argv_prefix == ("-c",)

    def test_environment_is_read_only(self):
        context = ShellContext("/bin/sh", ("-c",), {"PATH": "/usr/bin"})
        with pytest.raises(TypeError):
            context.environment["PATH"] = "/tmp"  # type: ignore[index]

    def test_argv_for(self):
        context = ShellContext("/bin/bash", ("-l", "-c"), {"PATH": "/usr/bin"})
        assert context.argv_for("claude --version") == ["/bin/bash", "-l", "-c", "claude --version"]

    def test_equivalent_ignores_other_env(self):
        a = ShellContext("/bin/sh", ("-c",), {"PATH": "/usr/bin", "FOO": "1"})
        b = ShellContext("/bin/sh", ("-c",), {"PATH": "/usr/bin", "FOO": "2"})
        c = ShellContext("/bin/sh", ("-c",), {"PATH": "/bin"})
        assert a.equivalent(b)
        assert not a.equivalent(c)

    def test_with_env(self):
        context = ShellContext("/bin/sh", ("-c",), {"PATH": "/usr/bin"})
        extended = context.with_env({"TERM": "dumb"})
        assert extended.environment["TERM"] == "dumb"
        assert "TERM" not in context.environment
        assert context.with_env(None) is context


class TestSessionState:
    def test_terminal_states(self):
        assert not SessionState.RUNNING.is_terminal
        assert SessionState.EXITED.is_terminal
        assert SessionState.DESTROYED.is_terminal
