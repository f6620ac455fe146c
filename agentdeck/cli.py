"""Click CLI definitions - main entry point."""

from __future__ import annotations

import logging
import os
import sys

import click

from agentdeck.commands.config_cmd import config_group
from agentdeck.commands.detect_cmd import detect_command, detect_one_command
from agentdeck.commands.server_cmd import server_group
from agentdeck.commands.shell_cmd import shell_group
from agentdeck.config import CLI_DETECT_DEBUG_ENV


@click.group()
@click.version_option(package_name="agentdeck")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--debug-detect", is_flag=True, help="Record every detection step in the cli-detect log")
@click.pass_context
def cli(ctx, debug: bool, debug_detect: bool) -> None:
    """agentdeck - agent CLI detection, terminals and Git workdirs."""
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if debug_detect:
        # load_config reads the flag from the environment
        os.environ[CLI_DETECT_DEBUG_ENV] = "1"
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


cli.add_command(config_group, "config")
cli.add_command(detect_command, "detect")
cli.add_command(detect_one_command, "detect-one")
cli.add_command(shell_group, "shell")
cli.add_command(server_group, "server")


if __name__ == "__main__":
    cli()
