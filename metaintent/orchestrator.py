"""
Sub-agent orchestration for intent clarification.

Each spawn batch holds one focused agent per facet of intent (scope,
constraints, outcomes, emotions). Agents ask one question at a time,
record findings from the answers and complete after a fixed number of
questions or once confident. Completed batches are synthesized into a
single extracted intent.

Backend failures never stop the conversation: question generation
falls back to curated question banks and synthesis falls back to a
deterministic merge of the agents' findings.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid

from .gateway import ReasoningGateway
from .intent_classifier import ReplyKind, classify_reply
from .payloads import clean_question, parse_synthesis
from .types import (
    AgentStatus,
    BackendRequest,
    ClarificationStrategy,
    ExtractedIntent,
    LLMConfig,
    QAPair,
    SubAgent,
    SubAgentSandbox,
    SubAgentType,
    SynthesisResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUESTIONS = 2
CONFIDENCE_STEP = 0.4
COMPLETION_CONFIDENCE = 0.8
MAX_FINDINGS_PER_RESPONSE = 3

AGENT_PURPOSES: dict[SubAgentType, str] = {
    SubAgentType.SCOPE: "defining boundaries, scale, and what is included/excluded",
    SubAgentType.CONSTRAINTS: "identifying limitations, resources, and requirements",
    SubAgentType.OUTCOMES: "clarifying success criteria, goals, and desired results",
    SubAgentType.EMOTIONS: "understanding emotional drivers, concerns, and motivations",
}

# Indexed by questions_asked modulo bank length
FALLBACK_QUESTIONS: dict[SubAgentType, tuple[str, ...]] = {
    SubAgentType.SCOPE: (
        "What is the scale or size of what you want to accomplish?",
        "Who else is involved or affected by this?",
        "What specific areas should this focus on, and what should it avoid?",
    ),
    SubAgentType.CONSTRAINTS: (
        "What limitations or restrictions do you need to work within?",
        "What resources (time, budget, tools) do you have available?",
        "Are there any requirements or rules that must be followed?",
    ),
    SubAgentType.OUTCOMES: (
        "What would success look like for this?",
        "How will you know when this is complete or working well?",
        "What specific results are you hoping to achieve?",
    ),
    SubAgentType.EMOTIONS: (
        "What motivated you to pursue this?",
        "What concerns or worries do you have about this?",
        "How do you feel about the current situation?",
    ),
}

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def determine_agent_types(
    strategy: ClarificationStrategy | str, ambiguity_score: int
) -> list[SubAgentType]:
    """Fixed strategy-to-facets table; very ambiguous input always gets three agents."""
    value = strategy.value if isinstance(strategy, ClarificationStrategy) else str(strategy)
    if value == ClarificationStrategy.MULTI.value or ambiguity_score > 70:
        return [SubAgentType.SCOPE, SubAgentType.CONSTRAINTS, SubAgentType.OUTCOMES]
    if value == ClarificationStrategy.SCOPE.value:
        return [SubAgentType.SCOPE]
    if value == ClarificationStrategy.CONSTRAINTS.value:
        return [SubAgentType.CONSTRAINTS]
    if value == ClarificationStrategy.OUTCOMES.value:
        return [SubAgentType.OUTCOMES]
    if value == ClarificationStrategy.EMOTIONS.value:
        return [SubAgentType.EMOTIONS, SubAgentType.OUTCOMES]
    return [SubAgentType.SCOPE, SubAgentType.OUTCOMES]


def fallback_question(agent_type: SubAgentType, question_number: int) -> str:
    bank = FALLBACK_QUESTIONS[agent_type]
    return bank[question_number % len(bank)]


def generic_question(agent_type: SubAgentType) -> str:
    return f"Can you tell me more about the {agent_type.value} of what you want to accomplish?"


def smart_question(agent: SubAgent, user_context: str) -> str:
    """
    Rule-based question keyed by agent type, whether anything has been
    answered yet and how many questions were asked.
    """
    lower = user_context.lower()
    has_answered = bool(agent.sandbox.conversation_history)
    asked = agent.questions_asked

    if agent.type == SubAgentType.SCOPE:
        if not has_answered:
            if any(word in lower for word in ("build", "create", "make")):
                return "What specific thing do you want to build or create?"
            if "help" in lower or "assist" in lower:
                return "Who or what do you want to help, and in what way?"
            return "Can you describe what you want to accomplish in more detail?"
        if asked == 1:
            if any(word in lower for word in ("app", "website", "software")):
                return "What are the main features or pages this should have?"
            return "What should be included in this, and what should be left out?"
        return "Who is this for, and what scale are you thinking (personal, team, public)?"

    if agent.type == SubAgentType.CONSTRAINTS:
        if not has_answered:
            return "What limitations do you have (time, budget, technical skills, etc.)?"
        if asked == 1:
            return "Are there any specific requirements or rules you need to follow?"
        return "What tools or resources do you already have available?"

    if agent.type == SubAgentType.OUTCOMES:
        if not has_answered:
            return "What would success look like? How will you know it's working?"
        if asked == 1:
            return "What specific results or outcomes are you hoping for?"
        return "How will you measure whether this is successful?"

    if agent.type == SubAgentType.EMOTIONS:
        if not has_answered:
            if "frustrated" in lower or "stuck" in lower:
                return "What's been frustrating you about this? What have you tried?"
            if "excited" in lower or "want" in lower:
                return "What excites you most about this idea?"
            return "What motivated you to start thinking about this?"
        if asked == 1:
            return "What concerns or worries do you have about moving forward?"
        return "What would make you feel confident that this is the right direction?"

    return fallback_question(agent.type, asked)


def extract_findings(response: str) -> list[str]:
    """Up to three sentences longer than ten characters; else the first 100 chars."""
    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(response) if len(s.strip()) > 10]
    findings = sentences[:MAX_FINDINGS_PER_RESPONSE]
    if not findings:
        findings = [response[:100]]
    return findings


def build_question_prompt(agent: SubAgent, user_context: str) -> str:
    previous = "\n\n".join(
        f"Q: {qa.question}\nA: {qa.answer}" for qa in agent.sandbox.conversation_history
    )
    history = f"Previous conversation:\n{previous}\n" if previous else ""
    return f"""You are a specialized clarification agent focused on: {AGENT_PURPOSES[agent.type]}

User's initial input: "{user_context}"

{history}
Your goal is to ask ONE targeted question that helps clarify the {agent.type.value} aspect of the user's intent.

Guidelines:
- Ask open-ended questions that encourage detailed responses
- Build on previous answers if available
- Be conversational and empathetic
- Keep questions concise (1-2 sentences)

Generate the next clarifying question:"""


def build_synthesis_prompt(agents: list[SubAgent]) -> str:
    sections = "\n".join(
        f"\n{a.type.value.upper()} Agent Findings:\n"
        + "\n".join(f"- {finding}" for finding in a.sandbox.findings)
        + "\n"
        for a in agents
    )
    return f"""Synthesize these clarification findings into a coherent intent summary:

{sections}

Generate a JSON response:
{{
  "summary": "<concise 2-3 sentence summary of the user's refined intent>",
  "extracted_intent": {{
    "goal": "<clear goal statement>",
    "scope": "<defined boundaries>",
    "constraints": [<list of constraints>],
    "success_criteria": [<list of success criteria>]
  }}
}}

Return ONLY valid JSON:"""


def fallback_synthesis(agents: list[SubAgent]) -> tuple[str, ExtractedIntent]:
    """Deterministic merge of findings used when the backend cannot synthesize."""
    all_findings = [finding for a in agents for finding in a.sandbox.findings]
    summary = f"Based on your responses: {'. '.join(all_findings[:3])}."

    def findings_of(agent_type: SubAgentType) -> list[str]:
        for agent in agents:
            if agent.type == agent_type:
                return list(agent.sandbox.findings)
        return []

    scope_findings = findings_of(SubAgentType.SCOPE)
    intent = ExtractedIntent(
        goal=next((f for f in all_findings if len(f) > 20), "User goal clarified"),
        scope=scope_findings[0] if scope_findings else "Scope defined",
        constraints=findings_of(SubAgentType.CONSTRAINTS),
        success_criteria=findings_of(SubAgentType.OUTCOMES),
    )
    return summary, intent


class SubAgentOrchestrator:
    """
    Registry and driver for clarification sub-agents.

    Agents live in an in-memory map keyed by agent id. The loop engine
    owns which agents belong to which session; the orchestrator only
    advances them.
    """

    def __init__(
        self,
        gateway: ReasoningGateway | None = None,
        max_questions: int = DEFAULT_MAX_QUESTIONS,
    ):
        self.gateway = gateway
        self.max_questions = max_questions
        self._agents: dict[str, SubAgent] = {}

    async def spawn_agents(
        self,
        strategy: ClarificationStrategy | str,
        user_input: str,
        ambiguity_score: int,
        session_id: str = "system",
    ) -> list[SubAgent]:
        """
        Create one agent per facet chosen for ``strategy`` and give each
        its first question. Questions are generated concurrently.
        """
        agents = [
            self._create_agent(agent_type, user_input)
            for agent_type in determine_agent_types(strategy, ambiguity_score)
        ]
        for agent in agents:
            self._agents[agent.agent_id] = agent

        await asyncio.gather(
            *(self.generate_next_question(agent, user_input, session_id) for agent in agents)
        )
        logger.debug(
            "Spawned %d agents: %s", len(agents), [a.type.value for a in agents]
        )
        return agents

    def _create_agent(self, agent_type: SubAgentType, initial_input: str) -> SubAgent:
        return SubAgent(
            agent_id=str(uuid.uuid4()),
            type=agent_type,
            sandbox=SubAgentSandbox(context={"initial_input": initial_input}),
            max_questions=self.max_questions,
        )

    async def generate_next_question(
        self, agent: SubAgent, user_context: str, session_id: str = "system"
    ) -> str:
        """Set and return the agent's next question; never empty."""
        question = ""
        if self.gateway is not None:
            request = BackendRequest(
                type="clarify_question",
                prompt=build_question_prompt(agent, user_context),
                config=LLMConfig(max_tokens=150, temperature=0.7),
                context={"agent_type": agent.type.value},
            )
            try:
                response = await self.gateway.complete(request, session_id)
                question = clean_question(response.content)
            except Exception as e:
                logger.warning("Question generation failed for %s agent: %s", agent.type.value, e)

        if not question:
            question = smart_question(agent, user_context).strip()
        if not question:
            question = generic_question(agent.type)

        agent.current_question = question
        return question

    async def process_response(self, agent_id: str, user_response: str) -> None:
        """
        Record the answer to an agent's pending question.

        A no-info reply completes the agent without findings. Otherwise
        findings are extracted and confidence rises by 0.4 (capped at 1);
        the agent completes once its question cap is reached or its
        confidence exceeds 0.8.
        """
        agent = self._agents.get(agent_id)
        if agent is None or not agent.is_active or not agent.current_question:
            logger.debug("Ignoring response for agent %s", agent_id)
            return

        agent.sandbox.conversation_history.append(
            QAPair(question=agent.current_question, answer=user_response)
        )
        agent.questions_asked += 1

        if classify_reply(user_response) != ReplyKind.ANSWER:
            agent.status = AgentStatus.COMPLETED
            return

        agent.sandbox.findings.extend(extract_findings(user_response))
        agent.sandbox.confidence = min(1.0, agent.sandbox.confidence + CONFIDENCE_STEP)

        if (
            agent.questions_asked >= agent.max_questions
            or agent.sandbox.confidence > COMPLETION_CONFIDENCE
        ):
            agent.status = AgentStatus.COMPLETED

    async def synthesize_findings(
        self, agents: list[SubAgent], session_id: str = "system"
    ) -> SynthesisResult:
        """Merge a batch's findings; confidence is the mean agent confidence."""
        confidence = (
            sum(a.sandbox.confidence for a in agents) / len(agents) if agents else 0.0
        )

        if self.gateway is not None:
            request = BackendRequest(
                type="clarify_synthesis",
                prompt=build_synthesis_prompt(agents),
                config=LLMConfig(max_tokens=400, temperature=0.4),
            )
            try:
                response = await self.gateway.complete(request, session_id)
                parsed = parse_synthesis(response.content)
                if parsed is not None:
                    summary, intent = parsed
                    return SynthesisResult(summary, intent, confidence)
                logger.warning("Unparseable synthesis response, using fallback")
            except Exception as e:
                logger.warning("Synthesis failed, using fallback: %s", e)

        summary, intent = fallback_synthesis(agents)
        return SynthesisResult(summary, intent, confidence)

    def get_agent(self, agent_id: str) -> SubAgent | None:
        return self._agents.get(agent_id)

    def get_all_agents(self) -> list[SubAgent]:
        return list(self._agents.values())

    def release(self, agents: list[SubAgent]) -> None:
        """Forget a finished batch."""
        for agent in agents:
            self._agents.pop(agent.agent_id, None)

    def clear_agents(self) -> None:
        self._agents.clear()


__all__ = [
    "AGENT_PURPOSES",
    "FALLBACK_QUESTIONS",
    "SubAgentOrchestrator",
    "determine_agent_types",
    "extract_findings",
    "fallback_question",
    "fallback_synthesis",
    "generic_question",
    "smart_question",
]
