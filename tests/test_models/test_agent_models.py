"""Tests for agent descriptor, source and detection result models."""

import pytest

from agentdeck.models.agent import (
    AgentDescriptor,
    BuiltinSource,
    CustomAgent,
    CustomSource,
    DetectionConfidence,
    DetectionResult,
    ExecutionEnvironment,
)


class TestAgentDescriptor:
    def test_version_command(self):
        agent = AgentDescriptor(id="codex", display_name="Codex", command="codex")
        assert agent.version_command == "codex --version"

    def test_extract_version_first_group(self):
        agent = AgentDescriptor(id="codex", display_name="Codex", command="codex")
        assert agent.extract_version("codex-cli 0.42.1\n") == "0.42.1"

    def test_extract_version_no_match(self):
        agent = AgentDescriptor(id="codex", display_name="Codex", command="codex")
        assert agent.extract_version("unknown build") is None

    def test_extract_version_without_pattern(self):
        agent = AgentDescriptor(id="x", display_name="X", command="x", version_pattern=None)
        assert agent.extract_version("1.2.3") is None

    def test_pattern_without_group_returns_whole_match(self):
        agent = AgentDescriptor(id="x", display_name="X", command="x", version_pattern=r"v\d+")
        assert agent.extract_version("tool v12") == "v12"


class TestSources:
    def test_builtin_source_custom_path_overrides_command(self):
        agent = AgentDescriptor(id="claude", display_name="Claude", command="claude")
        source = BuiltinSource(agent, custom_path="/opt/claude/bin/claude")
        descriptor = source.descriptor()
        assert descriptor.command == "/opt/claude/bin/claude"
        assert descriptor.is_builtin is True
        assert source.reported_command == "claude"

    def test_builtin_source_without_custom_path(self):
        agent = AgentDescriptor(id="claude", display_name="Claude", command="claude")
        assert BuiltinSource(agent).descriptor() is agent

    def test_custom_source_descriptor(self):
        source = CustomSource(CustomAgent(id="aider", name="Aider", command="aider", version_flag="-V"))
        descriptor = source.descriptor()
        assert descriptor.id == "aider"
        assert descriptor.display_name == "Aider"
        assert descriptor.version_command == "aider -V"
        assert descriptor.is_builtin is False


class TestDetectionResult:
    def _agent(self):
        return AgentDescriptor(id="claude", display_name="Claude", command="claude")

    def test_verified(self):
        result = DetectionResult.verified(self._agent(), "claude", "1.0.3")
        assert result.installed is True
        assert result.version == "1.0.3"
        assert result.timed_out is None
        assert result.environment == ExecutionEnvironment.NATIVE
        assert result.confidence == DetectionConfidence.VERIFIED

    def test_present_has_no_version(self):
        result = DetectionResult.present(self._agent(), "claude")
        assert result.installed is True
        assert result.version is None
        assert result.confidence == DetectionConfidence.PRESENT

    def test_missing(self):
        result = DetectionResult.missing(self._agent(), "claude")
        assert result.installed is False
        assert result.timed_out is False
        assert result.version is None
        assert result.confidence == DetectionConfidence.ABSENT

    def test_missing_with_timeout(self):
        result = DetectionResult.missing(self._agent(), "claude", timed_out=True)
        assert result.timed_out is True

    def test_version_requires_installed(self):
        with pytest.raises(ValueError):
            DetectionResult(
                id="claude", display_name="Claude", command="claude",
                installed=False, is_builtin=True, version="1.0.0",
            )

    def test_timed_out_requires_not_installed(self):
        with pytest.raises(ValueError):
            DetectionResult(
                id="claude", display_name="Claude", command="claude",
                installed=True, is_builtin=True, timed_out=False,
                confidence=DetectionConfidence.PRESENT,
            )

    def test_installed_requires_confidence(self):
        with pytest.raises(ValueError):
            DetectionResult(
                id="claude", display_name="Claude", command="claude",
                installed=True, is_builtin=True,
            )
