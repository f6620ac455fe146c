"""CLI handlers for agent CLI detection."""

from __future__ import annotations

import json

import click

from agentdeck.commands._helpers import _run
from agentdeck.models.agent import CustomAgent, DetectionResult


def _parse_custom(values: tuple[str, ...]) -> list[CustomAgent]:
    agents = []
    for value in values:
        agent_id, sep, command = value.partition("=")
        if not sep or not agent_id.strip() or not command.strip():
            raise click.BadParameter(f"expected ID=COMMAND, got {value!r}", param_hint="--custom")
        agents.append(CustomAgent(id=agent_id.strip(), name=agent_id.strip(), command=command.strip()))
    return agents


def _format_result(result: DetectionResult) -> str:
    if result.installed:
        status = click.style("installed", fg="green")
        detail = result.version or "version unknown"
    elif result.timed_out:
        status = click.style("timed out", fg="yellow")
        detail = "-"
    else:
        status = click.style("missing", fg="red")
        detail = "-"
    kind = "" if result.is_builtin else " [custom]"
    return f"  {result.id:<10} {status:<20} {detail:<16} {result.command}{kind}"


def _as_json(results: list[DetectionResult]) -> str:
    from agentdeck.infra.rpc.serialization import serialize_detection_result

    return json.dumps([serialize_detection_result(r) for r in results], indent=2)


@click.command("detect")
@click.option("--custom", "custom", multiple=True, help="Extra agent as ID=COMMAND (repeatable)")
@click.option("--refresh", is_flag=True, help="Ignore cached results")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON")
def detect_command(custom: tuple[str, ...], refresh: bool, as_json: bool):
    """Detect installed agent CLIs."""
    custom_agents = _parse_custom(custom)

    async def _detect():
        from agentdeck.context import AppContext

        ctx = AppContext()
        try:
            return await ctx.detector.detect_all(custom_agents=custom_agents, force_refresh=refresh)
        finally:
            await ctx.close()

    try:
        results = _run(_detect())
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if as_json:
        click.echo(_as_json(results))
        return
    for result in results:
        click.echo(_format_result(result))


@click.command("detect-one")
@click.argument("agent_id")
@click.option("--path", "custom_path", default="", help="Executable to use instead of the default command")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON")
def detect_one_command(agent_id: str, custom_path: str, as_json: bool):
    """Detect a single built-in agent CLI."""

    async def _detect():
        from agentdeck.context import AppContext

        ctx = AppContext()
        try:
            return await ctx.detector.detect_one(agent_id, custom_path=custom_path)
        finally:
            await ctx.close()

    result = _run(_detect())
    if as_json:
        click.echo(_as_json([result]))
        return
    click.echo(_format_result(result))
