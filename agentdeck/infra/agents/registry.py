"""Built-in agent CLI catalogue and detection batch assembly."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from agentdeck.models.agent import AgentDescriptor, AgentSource, BuiltinSource, CustomAgent, CustomSource

BUILTIN_AGENTS: tuple[AgentDescriptor, ...] = (
    AgentDescriptor(id="claude", display_name="Claude", command="claude"),
    AgentDescriptor(id="codex", display_name="Codex", command="codex"),
    AgentDescriptor(id="droid", display_name="Droid", command="droid"),
    AgentDescriptor(id="gemini", display_name="Gemini", command="gemini"),
    AgentDescriptor(id="auggie", display_name="Auggie", command="auggie"),
    AgentDescriptor(id="cursor", display_name="Cursor", command="cursor-agent"),
    AgentDescriptor(id="opencode", display_name="OpenCode", command="opencode"),
)

_BUILTINS_BY_ID: dict[str, AgentDescriptor] = {agent.id: agent for agent in BUILTIN_AGENTS}


def get_builtin(agent_id: str) -> AgentDescriptor | None:
    """Look up a built-in agent descriptor by id."""
    return _BUILTINS_BY_ID.get(agent_id)


def resolve_source(
    agent_id: str,
    custom_agent: CustomAgent | None = None,
    custom_path: str = "",
) -> AgentSource | None:
    """Single-agent lookup: built-ins win, then the supplied custom agent."""
    builtin = get_builtin(agent_id)
    if builtin:
        return BuiltinSource(builtin, custom_path=custom_path)
    if custom_agent:
        return CustomSource(custom_agent)
    return None


def build_sources(
    custom_agents: Iterable[CustomAgent] = (),
    custom_paths: Mapping[str, str] | None = None,
) -> list[AgentSource]:
    """All built-ins (in catalogue order) followed by the caller's custom agents.

    Raises ValueError if a custom id collides with a built-in or another
    custom agent in the same batch.
    """
    custom_paths = custom_paths or {}
    sources: list[AgentSource] = [
        BuiltinSource(agent, custom_path=custom_paths.get(agent.id, "")) for agent in BUILTIN_AGENTS
    ]
    seen = set(_BUILTINS_BY_ID)
    for agent in custom_agents:
        if agent.id in seen:
            raise ValueError(f"Duplicate agent id in detection batch: {agent.id}")
        seen.add(agent.id)
        sources.append(CustomSource(agent))
    return sources
