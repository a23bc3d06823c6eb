"""
Unit tests for agent specification generation.
"""

import json

import pytest

from metaintent.generator import (
    AgentGenerator,
    build_generation_prompt,
    default_system_prompt,
    fallback_specification,
    format_specification,
)
from metaintent.types import ExtractedIntent


@pytest.fixture
def intent():
    return ExtractedIntent(
        goal="Track daily runs",
        scope="Personal use on Android",
        constraints=["Works offline"],
        success_criteria=["Log a run in one tap"],
    )


class TestFallbackSpecification:
    def test_template_fields(self, intent):
        spec = fallback_specification(intent)

        assert spec.name == "Custom Task Agent"
        assert spec.purpose == "Track daily runs"
        assert spec.scope.included == ["Personal use on Android"]
        assert spec.scope.excluded == ["Tasks outside defined scope"]
        assert spec.constraints == ["Works offline"]
        assert len(spec.capabilities) == 4
        assert "help with: Track daily runs" in spec.system_prompt

    def test_empty_intent(self):
        spec = fallback_specification(ExtractedIntent())
        assert spec.purpose == "Assist with user-defined task"
        assert spec.success_criteria == ["Task completed successfully"]


class TestPrompts:
    def test_system_prompt_lists(self, intent):
        prompt = default_system_prompt(intent)
        assert "- Works offline" in prompt
        assert "- Log a run in one tap" in prompt
        assert "Emotional context" not in prompt

    def test_system_prompt_emotion(self):
        prompt = default_system_prompt(ExtractedIntent(emotional_context="User shows: anxiety"))
        assert "Emotional context: User shows: anxiety" in prompt
        assert "- Follow user guidance" in prompt

    def test_generation_prompt_keeps_last_five_turns(self, intent):
        history = [f"turn {n}" for n in range(8)]
        prompt = build_generation_prompt(intent, history)
        assert "turn 2" not in prompt
        assert "turn 3\nturn 4\nturn 5\nturn 6\nturn 7" in prompt
        assert "- Constraints: Works offline" in prompt


class TestFormatSpecification:
    def test_rendering(self, intent):
        text = format_specification(fallback_specification(intent))

        assert text.startswith("🤖 **Agent Specification**")
        assert "**Name:** Custom Task Agent" in text
        assert "  ✓ Understand user requirements" in text
        assert "  Excluded:\n    • Tasks outside defined scope" in text
        assert "  ⚠️ Works offline" in text
        assert "  🎯 Log a run in one tap" in text
        assert text.endswith("✅ Ready to deploy this agent?")

    def test_no_constraints_section_when_empty(self):
        text = format_specification(fallback_specification(ExtractedIntent()))
        assert "**Constraints:**" not in text


class TestAgentGenerator:
    @pytest.mark.asyncio
    async def test_without_backend(self, intent):
        spec = await AgentGenerator().generate_agent(intent)
        assert spec.name == "Custom Task Agent"

    @pytest.mark.asyncio
    async def test_offline_falls_back(self, intent, offline_gateway):
        spec = await AgentGenerator(offline_gateway).generate_agent(intent, ["hi"])
        assert spec.name == "Custom Task Agent"

    @pytest.mark.asyncio
    async def test_backend_design_used(self, intent, make_gateway, scripted_adapter):
        payload = {
            "name": "Run Logger",
            "purpose": "Log runs quickly",
            "capabilities": ["Record distance"],
            "estimated_complexity": "simple",
        }
        primary = scripted_adapter([json.dumps(payload)])

        spec = await AgentGenerator(make_gateway(primary)).generate_agent(intent, ["hi"])

        assert spec.name == "Run Logger"
        assert spec.capabilities == ["Record distance"]
        assert spec.estimated_complexity == "simple"
        assert spec.constraints == ["Works offline"]
        assert spec.system_prompt == default_system_prompt(intent)

    @pytest.mark.asyncio
    async def test_unparseable_design_falls_back(self, intent, make_gateway, scripted_adapter):
        primary = scripted_adapter(["I would call it Run Logger."])
        spec = await AgentGenerator(make_gateway(primary)).generate_agent(intent)
        assert spec.name == "Custom Task Agent"
