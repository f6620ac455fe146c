"""CLI handlers for shell discovery and resolution."""

from __future__ import annotations

import click

from agentdeck.models.shell import ShellConfig, ShellType


@click.group("shell")
def shell_group():
    """Inspect available shells."""
    pass


@shell_group.command("detect")
def shell_detect():
    """List the shells available on this machine."""
    from agentdeck.infra.shell import ShellResolver

    for info in ShellResolver().detect_shells():
        mark = click.style("yes", fg="green") if info.available else click.style("no", fg="red")
        wsl = " (WSL)" if info.is_wsl else ""
        click.echo(f"  {info.id:<12} {mark:<12} {info.path}{wsl}")


@shell_group.command("resolve")
@click.option(
    "--type",
    "shell_type",
    type=click.Choice([t.value for t in ShellType]),
    default=None,
    help="Shell type (defaults to the configured one)",
)
@click.option("--path", "custom_path", default="", help="Executable for a custom shell")
@click.option("--arg", "custom_args", multiple=True, help="Argument for a custom shell (repeatable)")
@click.option("--show-path", is_flag=True, help="Also print the reconstructed PATH")
@click.option("--command", "command", default="", help="Also print this command wrapped for the login shell")
def shell_resolve(
    shell_type: str | None, custom_path: str, custom_args: tuple[str, ...], show_path: bool, command: str
):
    """Show the shell and arguments commands will run with."""
    from agentdeck.config import load_config
    from agentdeck.infra.shell import ShellResolver, wrap_login_command

    if shell_type is None:
        config = load_config().shell.to_shell_config()
    else:
        config = ShellConfig(shell_type=ShellType(shell_type), custom_path=custom_path, custom_args=custom_args)

    context = ShellResolver().resolve(config)
    click.echo(f"Shell: {context.executable_path}")
    click.echo(f"Args:  {' '.join(context.argv_prefix)}")
    if show_path:
        click.echo(f"PATH:  {context.path}")
    if command:
        click.echo(f"Command: {wrap_login_command(context, command)}")
