"""
Deterministic formatting of the understood intent for the user.

Output uses the markdown-like convention the calling UIs render
verbatim: ``**bold**`` labels, bullet lines and emoji markers.
"""

from __future__ import annotations

from .types import ExtractedIntent, GoalEcho, SubAgentType

CONFIRM_CONFIDENCE = 0.7
CONFIRM_MAX_SCORE = 40

PROMPT_ICONS: dict[str, str] = {
    SubAgentType.SCOPE.value: "🎯",
    SubAgentType.CONSTRAINTS.value: "⚙️",
    SubAgentType.OUTCOMES.value: "🏆",
    SubAgentType.EMOTIONS.value: "💭",
}
DEFAULT_PROMPT_ICON = "❓"


def confidence_stars(confidence: float) -> str:
    filled = max(0, min(5, int(confidence * 5 + 0.5)))
    return "⭐" * filled + "☆" * (5 - filled)


def progress_bar(percent: float) -> str:
    filled = max(0, min(10, int(percent / 10 + 0.5)))
    return "█" * filled + "░" * (10 - filled) + f" {percent:.0f}%"


def summarize_intent(intent: ExtractedIntent) -> str:
    parts: list[str] = []
    if intent.goal:
        parts.append(intent.goal)
    if intent.scope:
        parts.append(f"with scope: {intent.scope}")
    if intent.constraints:
        parts.append(f"considering: {', '.join(intent.constraints)}")
    return " ".join(parts) or "Intent being clarified"


def _bullets(items: list[str]) -> str:
    return "".join(f"  • {item}\n" for item in items)


class GoalEchoGenerator:
    """Builds goal echoes, progress updates and clarification prompts."""

    def generate_echo(
        self, intent: ExtractedIntent, confidence: float, ambiguity_score: int
    ) -> GoalEcho:
        return GoalEcho(
            summary=summarize_intent(intent),
            confidence=confidence,
            needs_confirmation=(
                confidence > CONFIRM_CONFIDENCE and ambiguity_score < CONFIRM_MAX_SCORE
            ),
            formatted_display=self.format_echo(intent, confidence),
        )

    def format_echo(self, intent: ExtractedIntent, confidence: float) -> str:
        echo = "🎯 **Here's what I understand so far:**\n\n"

        if intent.goal:
            echo += f"**Goal:** {intent.goal}\n\n"
        if intent.scope:
            echo += f"**Scope:** {intent.scope}\n\n"
        if intent.constraints:
            echo += "**Constraints:**\n" + _bullets(intent.constraints) + "\n"
        if intent.success_criteria:
            echo += "**Success Looks Like:**\n" + _bullets(intent.success_criteria) + "\n"
        if intent.emotional_context:
            echo += f"**Context:** {intent.emotional_context}\n\n"

        echo += f"**Confidence:** {confidence * 100:.0f}% {confidence_stars(confidence)}\n\n"

        if confidence > 0.7:
            echo += "✅ This looks pretty clear! Should we proceed with generating your agent?"
        elif confidence > 0.4:
            echo += "🔄 We're making progress! Let's refine this a bit more."
        else:
            echo += "🤔 Let's clarify a few more things to get this just right."
        return echo

    def generate_progress_update(
        self, previous_score: int, current_score: int, questions_asked: int
    ) -> str:
        improvement = previous_score - current_score
        message = f"📊 **Progress Update** (Question {questions_asked}):\n\n"

        if improvement > 20:
            message += f"🎉 Great progress! Clarity improved by {improvement} points.\n"
        elif improvement > 10:
            message += f"✨ Good! We're getting clearer ({improvement} points better).\n"
        elif improvement > 0:
            message += f"👍 Making progress ({improvement} points clearer).\n"
        else:
            message += "🤔 Let's try a different angle to improve clarity.\n"

        clarity = max(0, 100 - current_score)
        message += f"\n**Current Clarity:** {clarity}%\n"
        message += f"{progress_bar(clarity)}\n"
        return message

    def generate_clarification_prompt(self, agent_type: SubAgentType | str, question: str) -> str:
        name = agent_type.value if isinstance(agent_type, SubAgentType) else str(agent_type)
        icon = PROMPT_ICONS.get(name, DEFAULT_PROMPT_ICON)
        return f"{icon} **{name[:1].upper() + name[1:]} Clarification:**\n\n{question}"


__all__ = [
    "GoalEchoGenerator",
    "confidence_stars",
    "progress_bar",
    "summarize_intent",
]
