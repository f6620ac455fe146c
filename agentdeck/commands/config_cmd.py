"""CLI handlers for config commands."""

from __future__ import annotations

import json

import click

from agentdeck.config import DEFAULT_CONFIG_PATH, init_config, load_config


@click.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
def config_init(force: bool):
    """Create default configuration file."""
    if DEFAULT_CONFIG_PATH.exists() and not force:
        click.echo(f"Configuration already exists at: {DEFAULT_CONFIG_PATH} (use --force to overwrite)")
        return
    path = init_config()
    click.echo(f"Configuration created at: {path}")


@config_group.command("show")
def config_show():
    """Show current configuration."""
    config = load_config()
    click.echo(f"Config file: {config.config_path}")
    click.echo(f"  Data dir: {config.resolved_data_dir}")
    click.echo(f"  Detection log: {config.detect_log_path}")
    click.echo(f"  Shell: {config.shell.shell_type}" + (f" ({config.shell.custom_path})" if config.shell.custom_path else ""))
    click.echo(
        f"  Detection timeouts: posix={config.detection.posix_timeout:g}s "
        f"windows={config.detection.windows_timeout:g}s probe cap={config.detection.probe_timeout_cap:g}s"
    )
    click.echo(
        f"  Terminal: {config.terminal.default_cols}x{config.terminal.default_rows} "
        f"TERM={config.terminal.term} grace={config.terminal.kill_grace_period:g}s"
    )
    click.echo(f"  Temporary workspaces: {config.workspace.resolved_temp_root}")
    click.echo(f"  Server socket: {config.server.resolved_socket_path}")
    click.echo(f"  Detection debug: {'enabled' if config.debug_cli_detect else 'disabled'}")
    click.echo(f"  Packaged runtime: {'yes' if config.packaged else 'no'}")


def _coerce(value: str):
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        pass
    if value.startswith("[") or value.startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a configuration value.

    Modifies the TOML config file. Key uses dot notation, e.g.:
    shell.shell_type, detection.posix_timeout, terminal.kill_grace_period
    """
    import tomli_w

    path = DEFAULT_CONFIG_PATH
    if not path.exists():
        click.echo("No config file found. Run 'agentdeck config init' first.", err=True)
        return

    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore[no-redef]

    with open(path, "rb") as f:
        data = tomllib.load(f)

    # Navigate dot-separated key
    parts = key.split(".")
    target = data
    for part in parts[:-1]:
        if part not in target:
            target[part] = {}
        target = target[part]

    target[parts[-1]] = _coerce(value)

    with open(path, "wb") as f:
        tomli_w.dump(data, f)

    click.echo(f"Set {key} = {value}")
