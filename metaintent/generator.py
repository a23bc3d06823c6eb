"""
Agent specification generation from a clarified intent.
"""

from __future__ import annotations

import logging
import uuid

from .gateway import ReasoningGateway
from .payloads import parse_agent_spec
from .types import (
    AgentScope,
    AgentSpecification,
    BackendRequest,
    ExtractedIntent,
    LLMConfig,
)

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 5

FALLBACK_CAPABILITIES = (
    "Understand user requirements",
    "Execute defined tasks",
    "Provide progress updates",
    "Handle errors gracefully",
)


def _dash_list(items: list[str], default: str) -> str:
    return "\n".join(f"- {item}" for item in items) if items else default


def default_system_prompt(intent: ExtractedIntent) -> str:
    emotional = (
        f"\nEmotional context: {intent.emotional_context}\n"
        "Be empathetic and supportive in your responses."
        if intent.emotional_context
        else ""
    )
    return f"""You are a specialized AI agent designed to help with: {intent.goal or 'user-defined tasks'}.

Your scope includes:
{intent.scope or 'Working within user-defined boundaries'}

Constraints you must follow:
{_dash_list(intent.constraints, '- Follow user guidance')}

Success criteria:
{_dash_list(intent.success_criteria, '- Complete the task effectively')}
{emotional}
Always:
- Be clear and concise
- Ask for clarification when needed
- Provide progress updates
- Stay within your defined scope
- Acknowledge limitations honestly"""


def fallback_specification(intent: ExtractedIntent) -> AgentSpecification:
    return AgentSpecification(
        agent_id=str(uuid.uuid4()),
        name="Custom Task Agent",
        purpose=intent.goal or "Assist with user-defined task",
        capabilities=list(FALLBACK_CAPABILITIES),
        scope=AgentScope(
            included=[intent.scope or "User-defined scope"],
            excluded=["Tasks outside defined scope"],
        ),
        constraints=list(intent.constraints),
        success_criteria=list(intent.success_criteria) or ["Task completed successfully"],
        system_prompt=default_system_prompt(intent),
    )


def build_generation_prompt(intent: ExtractedIntent, history: list[str]) -> str:
    context = "\n".join(history[-HISTORY_WINDOW:])
    return f"""You are an expert AI agent architect. Based on the clarified user intent, design a complete agent specification.

**User's Refined Intent:**
- Goal: {intent.goal or 'Not specified'}
- Scope: {intent.scope or 'Not specified'}
- Constraints: {', '.join(intent.constraints) or 'None specified'}
- Success Criteria: {', '.join(intent.success_criteria) or 'Not specified'}
- Emotional Context: {intent.emotional_context or 'None'}

**Conversation Context:**
{context}

Design an agent specification in JSON format:

{{
  "name": "<descriptive agent name>",
  "purpose": "<clear one-sentence purpose>",
  "capabilities": [<list of specific capabilities the agent needs>],
  "scope": {{
    "included": [<what the agent should handle>],
    "excluded": [<what the agent should NOT handle>]
  }},
  "constraints": [<technical or operational constraints>],
  "success_criteria": [<measurable success indicators>],
  "estimated_complexity": "<simple|moderate|complex>",
  "suggested_architecture": "<single|multi-agent>",
  "system_prompt": "<detailed system prompt for the agent>"
}}

Guidelines:
- Be specific and actionable
- Match the user's language and style
- Consider the emotional context
- Ensure success criteria are measurable
- Make the system prompt comprehensive

Return ONLY valid JSON:"""


def format_specification(spec: AgentSpecification) -> str:
    """Render a specification in the same markdown-like style as goal echoes."""
    lines = [
        "🤖 **Agent Specification**",
        "",
        f"**Name:** {spec.name}",
        f"**Purpose:** {spec.purpose}",
        "",
        "**Capabilities:**",
        *(f"  ✓ {cap}" for cap in spec.capabilities),
        "",
        "**Scope:**",
        "  Included:",
        *(f"    • {item}" for item in spec.scope.included),
    ]
    if spec.scope.excluded:
        lines.append("  Excluded:")
        lines.extend(f"    • {item}" for item in spec.scope.excluded)
    lines.append("")

    if spec.constraints:
        lines.append("**Constraints:**")
        lines.extend(f"  ⚠️ {c}" for c in spec.constraints)
        lines.append("")

    lines.append("**Success Criteria:**")
    lines.extend(f"  🎯 {c}" for c in spec.success_criteria)
    lines.extend(
        [
            "",
            f"**Complexity:** {spec.estimated_complexity}",
            f"**Architecture:** {spec.suggested_architecture}",
            "",
            "---",
            "",
            "**System Prompt:**",
            "```",
            spec.system_prompt,
            "```",
            "",
            "✅ Ready to deploy this agent?",
        ]
    )
    return "\n".join(lines)


class AgentGenerator:
    """Designs an agent for a clarified intent; falls back to a template design."""

    def __init__(self, gateway: ReasoningGateway | None = None):
        self.gateway = gateway

    async def generate_agent(
        self,
        intent: ExtractedIntent,
        history: list[str] | None = None,
        session_id: str = "system",
    ) -> AgentSpecification:
        if self.gateway is not None:
            request = BackendRequest(
                type="agent_generation",
                prompt=build_generation_prompt(intent, history or []),
                config=LLMConfig(max_tokens=2000, temperature=0.5),
            )
            try:
                response = await self.gateway.complete(request, session_id)
                spec = parse_agent_spec(response.content, intent)
                if spec is not None:
                    if not spec.system_prompt:
                        spec.system_prompt = default_system_prompt(intent)
                    return spec
                logger.warning("Unparseable agent specification, using fallback")
            except Exception as e:
                logger.warning("Agent generation failed, using fallback: %s", e)

        return fallback_specification(intent)


__all__ = [
    "AgentGenerator",
    "build_generation_prompt",
    "default_system_prompt",
    "fallback_specification",
    "format_specification",
]
