"""Tests for shell resolution, PATH reconstruction and login wrapping."""

from agentdeck.infra.shell import (
    POWERSHELL7_PATH,
    ShellResolver,
    build_enhanced_path,
    login_argv,
    wrap_login_command,
)
from agentdeck.models.shell import ShellConfig, ShellContext, ShellType


def make_resolver(platform="linux", existing=(), environ=None, which=None):
    existing = set(existing)
    return ShellResolver(
        platform=platform,
        environ=environ if environ is not None else {"PATH": "/usr/bin:/bin", "HOME": "/home/dev"},
        exists=lambda p: p in existing,
        which=which or (lambda name: None),
        home="/home/dev",
    )


class TestWindowsResolution:
    def test_falls_back_to_windows_powershell(self):
        resolver = make_resolver(platform="win32", environ={"Path": r"C:\Windows"})
        context = resolver.resolve(ShellConfig(platform="win32"))
        assert context.executable_path == "powershell.exe"
        assert context.argv_prefix == ("-NoLogo", "-Command")

    def test_prefers_powershell7(self):
        resolver = make_resolver(platform="win32", existing=[POWERSHELL7_PATH], environ={"Path": r"C:\Windows"})
        context = resolver.resolve()
        assert context.executable_path == POWERSHELL7_PATH

    def test_cmd(self):
        resolver = make_resolver(platform="win32", environ={"Path": r"C:\Windows"})
        context = resolver.resolve(ShellConfig(shell_type=ShellType.CMD))
        assert context.executable_path == "cmd.exe"
        assert context.argv_prefix == ("/d", "/s", "/c")

    def test_login_uses_cmd(self):
        resolver = make_resolver(platform="win32", environ={"Path": r"C:\Windows"})
        assert resolver.find_login_shell() == ("cmd.exe", ("/d", "/s", "/c"))

    def test_path_key_normalized(self):
        resolver = make_resolver(platform="win32", environ={"Path": r"C:\Windows;C:\Tools"})
        context = resolver.resolve()
        assert "Path" not in context.environment
        assert context.path.split(";")[:2] == [r"C:\Windows", r"C:\Tools"]


class TestPosixResolution:
    def test_uses_shell_env(self):
        resolver = make_resolver(environ={"SHELL": "/usr/bin/fish", "PATH": "/usr/bin"})
        context = resolver.resolve()
        assert context.executable_path == "/usr/bin/fish"
        assert context.argv_prefix == ("-c",)

    def test_fallback_order(self):
        resolver = make_resolver(existing=["/bin/bash", "/bin/sh"])
        assert resolver.default_shell() == "/bin/bash"

    def test_last_resort_sh(self):
        resolver = make_resolver()
        assert resolver.default_shell() == "/bin/sh"

    def test_login(self):
        resolver = make_resolver(existing=["/bin/zsh"])
        context = resolver.resolve(ShellConfig(shell_type=ShellType.LOGIN))
        assert context.executable_path == "/bin/zsh"
        assert context.argv_prefix == ("-l", "-c")

    def test_named_shell_missing_falls_back(self):
        resolver = make_resolver(existing=["/bin/sh"])
        context = resolver.resolve(ShellConfig(shell_type=ShellType.ZSH))
        assert context.executable_path == "/bin/sh"

    def test_custom_shell(self):
        resolver = make_resolver(existing=["/opt/fish"])
        config = ShellConfig(shell_type=ShellType.CUSTOM, custom_path="/opt/fish", custom_args=("-c",))
        context = resolver.resolve(config)
        assert context.executable_path == "/opt/fish"
        assert context.argv_prefix == ("-c",)

    def test_custom_shell_missing(self):
        resolver = make_resolver(existing=["/bin/bash"])
        config = ShellConfig(shell_type=ShellType.CUSTOM, custom_path="/nope/shell")
        assert resolver.resolve(config).executable_path == "/bin/bash"

    def test_interactive_uses_login_flag(self):
        resolver = make_resolver(existing=["/bin/bash"])
        context = resolver.resolve_interactive()
        assert context.argv_prefix == ("-l",)

    def test_resolve_for_command(self):
        resolver = make_resolver(existing=["/bin/bash"])
        assert resolver.resolve_for_command() == ("/bin/bash", ["-c"])

    def test_extra_env(self):
        resolver = make_resolver()
        env = resolver.environment_for_command(extra={"FOO": "bar"})
        assert env["FOO"] == "bar"
        assert env["PATH"].startswith("/usr/bin:/bin")

    def test_detect_shells(self):
        resolver = make_resolver(existing=["/bin/bash", "/bin/sh"])
        shells = {s.id: s for s in resolver.detect_shells()}
        assert shells["bash"].available
        assert not shells["zsh"].available
        assert not shells["fish"].available


class TestEnhancedPath:
    def test_inherited_first_and_deduplicated(self):
        path = build_enhanced_path(
            "/usr/bin:/usr/local/bin:/usr/bin",
            platform="linux",
            home="/home/dev",
            environ={},
            exists=lambda p: p in ("/usr/local/bin", "/home/dev/.cargo/bin"),
        )
        assert path.split(":") == ["/usr/bin", "/usr/local/bin", "/home/dev/.cargo/bin"]

    def test_missing_extras_skipped(self):
        path = build_enhanced_path("/bin", platform="linux", home="/home/dev", environ={}, exists=lambda p: False)
        assert path == "/bin"

    def test_windows_case_insensitive(self):
        path = build_enhanced_path(
            r"C:\Users\dev\AppData\Roaming\npm;C:\Windows",
            platform="win32",
            home=r"C:\Users\dev",
            environ={"APPDATA": r"C:\Users\Dev\AppData\Roaming", "USERPROFILE": r"C:\Users\dev"},
            exists=lambda p: True,
        )
        entries = path.split(";")
        assert entries[:2] == [r"C:\Users\dev\AppData\Roaming\npm", r"C:\Windows"]
        assert len([e for e in entries if e.lower().endswith(r"roaming\npm")]) == 1
        assert r"C:\Users\dev\scoop\shims" in entries


class TestLoginWrapping:
    def test_quotes_everything(self):
        context = ShellContext(r"C:\Program Files\Git\bin\bash.exe", ("-l", "-c"), {})
        wrapped = wrap_login_command(context, 'echo "hi"')
        assert wrapped == '"C:\\Program Files\\Git\\bin\\bash.exe" "-l" "-c" "echo \\"hi\\""'

    def test_argv_form(self):
        resolver = make_resolver(existing=["/bin/bash"])
        context = resolver.resolve(ShellConfig(shell_type=ShellType.LOGIN))
        assert login_argv(context, "claude --version") == ["/bin/bash", "-l", "-c", "claude --version"]

    def test_windows_login_context(self):
        resolver = make_resolver(platform="win32", environ={"Path": r"C:\Windows"})
        context = resolver.resolve(ShellConfig(shell_type=ShellType.LOGIN))
        assert login_argv(context, "codex --version") == ["cmd.exe", "/d", "/s", "/c", "codex --version"]
