"""
Ambiguity scoring for free-text requests.

The backend is asked for a structured analysis under a fixed timeout.
Any backend failure, timeout or unparseable reply falls through to a
deterministic keyword heuristic, so ``analyze`` always returns.
"""

from __future__ import annotations

import asyncio
import logging
import re

from .gateway import ReasoningGateway
from .payloads import parse_analysis
from .types import (
    AmbiguityAnalysis,
    AmbiguitySignals,
    BackendRequest,
    ClarificationStrategy,
    EmotionalMarker,
    EmotionType,
    LLMConfig,
)

logger = logging.getLogger(__name__)

ANALYSIS_TIMEOUT_S = 5.0
HEURISTIC_REASONING = "Fallback analysis based on simple heuristics"

# Scoring vocabularies (substring matches on lowercased input)
HEDGING_WORDS = (
    "maybe",
    "perhaps",
    "kind of",
    "sort of",
    "i think",
    "not sure",
    "possibly",
    "might",
    "could",
)
VAGUE_WORDS = ("stuff", "things", "something", "whatever", "anything", "somehow")
UNCERTAIN_PHRASES = ("don't know", "not sure", "unclear", "confused", "unsure")
GENERIC_ACTIONS = ("build", "make", "create", "do", "help", "work")

# Reported signal vocabularies
HEDGING_SIGNALS = ("maybe", "perhaps", "kind of", "sort of", "i think", "not sure")
VAGUE_SIGNALS = ("stuff", "things", "something", "whatever")

_EMOTION_RULES: tuple[tuple[tuple[str, ...], EmotionType, float, str], ...] = (
    (("frustrated", "annoying"), EmotionType.FRUSTRATION, 0.7, "frustrated/annoying language detected"),
    (("excited", "amazing"), EmotionType.EXCITEMENT, 0.7, "excited/positive language detected"),
    (("confused", "not sure"), EmotionType.CONFUSION, 0.8, "confusion indicators detected"),
)

_DIGIT = re.compile(r"\d")
_CAPITALIZED = re.compile(r"[A-Z][a-z]+")


def heuristic_score(text: str) -> int:
    """
    Additive keyword score in [0, 100].

    +20 per hedging word, +25 per vague word, +30 per uncertainty
    phrase, +15 for a question mark, +30 under five words, +20 for
    short input with no digits or capitalized words, +25 for a generic
    action verb with nothing specific around it.
    """
    lower = text.lower()
    words = text.split(" ")
    score = 0

    score += 20 * sum(1 for word in HEDGING_WORDS if word in lower)
    score += 25 * sum(1 for word in VAGUE_WORDS if word in lower)
    score += 30 * sum(1 for phrase in UNCERTAIN_PHRASES if phrase in lower)

    if "?" in text:
        score += 15

    if len(words) < 5:
        score += 30

    has_numbers = bool(_DIGIT.search(text))
    has_capitalized = bool(_CAPITALIZED.search(text))
    if not has_numbers and not has_capitalized and len(words) < 10:
        score += 20

    has_generic_action = any(action in lower for action in GENERIC_ACTIONS)
    has_specifics = len(words) > 8 or has_numbers or "for" in lower or "with" in lower
    if has_generic_action and not has_specifics:
        score += 25

    return min(100, score)


def heuristic_signals(text: str) -> AmbiguitySignals:
    lower = text.lower()
    markers = [
        EmotionalMarker(type=emotion, confidence=confidence, evidence=evidence)
        for keywords, emotion, confidence, evidence in _EMOTION_RULES
        if any(k in lower for k in keywords)
    ]
    return AmbiguitySignals(
        hedging_language=[w for w in HEDGING_SIGNALS if w in lower],
        vague_terms=[w for w in VAGUE_SIGNALS if w in lower],
        emotional_markers=markers,
    )


def heuristic_analysis(text: str) -> AmbiguityAnalysis:
    """Deterministic, side-effect-free analysis used when the backend is unavailable."""
    score = heuristic_score(text)
    return AmbiguityAnalysis(
        score=score,
        signals=heuristic_signals(text),
        recommended_strategy=(
            ClarificationStrategy.MULTI if score > 70 else ClarificationStrategy.SCOPE
        ),
        reasoning=HEURISTIC_REASONING,
    )


def build_analysis_prompt(text: str, history: list[str]) -> str:
    context = f"Previous Context:\n{chr(10).join(history)}\n" if history else ""
    return f"""You are an expert at detecting ambiguity in human communication. Analyze the following user input for vagueness, contradictions, and emotional markers.

User Input: "{text}"

{context}
Analyze and return a JSON response with:
{{
  "score": <0-100, where 100 is extremely ambiguous>,
  "signals": {{
    "hedging_language": [<words like "maybe", "kind of", "sort of", "I think">],
    "contradictions": [<conflicting statements>],
    "emotional_markers": [
      {{
        "type": <"frustration"|"excitement"|"confusion"|"anxiety"|"neutral">,
        "confidence": <0-1>,
        "evidence": <quote from input>
      }}
    ],
    "vague_terms": [<words like "stuff", "things", "something">],
    "multiple_topics": [<distinct topics mentioned>]
  }},
  "recommended_strategy": <"scope"|"constraints"|"outcomes"|"emotions"|"multi">,
  "reasoning": <brief explanation of the ambiguity>
}}

Focus on:
1. Hedging language that indicates uncertainty
2. Contradictory statements or goals
3. Emotional undertones (frustration, excitement, confusion)
4. Vague or undefined terms
5. Multiple unrelated topics

Return ONLY valid JSON."""


class AmbiguityDetector:
    """Scores how much clarification a request needs."""

    def __init__(
        self,
        gateway: ReasoningGateway | None = None,
        timeout: float = ANALYSIS_TIMEOUT_S,
    ):
        """
        Initialize detector.

        Args:
            gateway: Backend access; None disables the backend entirely
            timeout: Seconds to wait for the backend before falling back
        """
        self.gateway = gateway
        self.timeout = timeout

    async def analyze(
        self,
        text: str,
        history: list[str] | None = None,
        session_id: str = "system",
    ) -> AmbiguityAnalysis:
        """Score ``text``; never raises."""
        if self.gateway is not None:
            request = BackendRequest(
                type="ambiguity_analysis",
                prompt=build_analysis_prompt(text, history or []),
                config=LLMConfig(max_tokens=500, temperature=0.3),
            )
            try:
                response = await asyncio.wait_for(
                    self.gateway.complete(request, session_id), timeout=self.timeout
                )
                analysis = parse_analysis(response.content)
                if analysis is not None:
                    return analysis
                logger.warning("Unparseable ambiguity analysis, using heuristic")
            except asyncio.TimeoutError:
                logger.warning("Ambiguity analysis timed out after %.1fs", self.timeout)
            except Exception as e:
                logger.warning("Ambiguity analysis failed, using heuristic: %s", e)

        return heuristic_analysis(text)


__all__ = [
    "AmbiguityDetector",
    "HEURISTIC_REASONING",
    "build_analysis_prompt",
    "heuristic_analysis",
    "heuristic_score",
    "heuristic_signals",
]
