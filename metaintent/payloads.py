"""
Strict parsing of JSON payloads returned by the reasoning backend.

Backend output is untrusted. Each payload shape has one parser that
extracts the first balanced JSON object, validates the fields it needs
and substitutes documented defaults for the rest. A parser returns
None only when no usable object exists, which callers treat exactly
like a backend failure.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

from .types import (
    AgentScope,
    AgentSpecification,
    AmbiguityAnalysis,
    AmbiguitySignals,
    ClarificationStrategy,
    EmotionalMarker,
    EmotionType,
    ExtractedIntent,
)

logger = logging.getLogger(__name__)

# Defaults substituted for missing or malformed fields
DEFAULT_ANALYSIS_SCORE = 50
DEFAULT_ANALYSIS_REASONING = "Unable to determine specific ambiguity patterns"
DEFAULT_SYNTHESIS_SUMMARY = "Intent clarified through conversation."
DEFAULT_AGENT_NAME = "Custom Agent"
DEFAULT_AGENT_PURPOSE = "Assist user with their goal"
COMPLEXITY_LEVELS = ("simple", "moderate", "complex")
ARCHITECTURES = ("single", "multi-agent")


def extract_json_object(text: str) -> dict[str, Any] | None:
    """
    Return the first balanced ``{...}`` in ``text`` that parses as a JSON object.

    Braces inside JSON strings are ignored while balancing. Candidates
    that fail to parse are skipped in favour of the next opening brace.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        value = json.loads(text[start : i + 1])
                    except ValueError:
                        break
                    if isinstance(value, dict):
                        return value
                    break
        start = text.find("{", start + 1)
    return None


def _pick(data: dict[str, Any], *names: str) -> Any:
    """First present key among snake_case/camelCase spellings."""
    for name in names:
        if name in data:
            return data[name]
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]


def _optional_string(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def clamp_score(value: Any, default: int = DEFAULT_ANALYSIS_SCORE) -> int:
    """Coerce to an int score in [0, 100]."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score != score:  # NaN
        return default
    return int(round(min(100.0, max(0.0, score))))


def _parse_marker(raw: Any) -> EmotionalMarker | None:
    if not isinstance(raw, dict):
        return None
    try:
        emotion = EmotionType(str(raw.get("type", "neutral")).lower())
    except ValueError:
        emotion = EmotionType.NEUTRAL
    try:
        confidence = min(1.0, max(0.0, float(raw.get("confidence", 0.5))))
    except (TypeError, ValueError):
        confidence = 0.5
    return EmotionalMarker(type=emotion, confidence=confidence, evidence=str(raw.get("evidence", "")))


def parse_signals(raw: Any) -> AmbiguitySignals:
    """Signals with every missing field defaulted to empty."""
    if not isinstance(raw, dict):
        return AmbiguitySignals()
    markers = [_parse_marker(m) for m in _pick(raw, "emotional_markers", "emotionalMarkers") or []]
    return AmbiguitySignals(
        hedging_language=_string_list(_pick(raw, "hedging_language", "hedgingLanguage")),
        contradictions=_string_list(raw.get("contradictions")),
        emotional_markers=[m for m in markers if m is not None],
        vague_terms=_string_list(_pick(raw, "vague_terms", "vagueTerms")),
        multiple_topics=_string_list(_pick(raw, "multiple_topics", "multipleTopics")),
    )


def parse_strategy(value: Any) -> ClarificationStrategy:
    try:
        return ClarificationStrategy(str(value).lower())
    except ValueError:
        return ClarificationStrategy.SCOPE


def parse_analysis(text: str) -> AmbiguityAnalysis | None:
    """
    Parse an ambiguity analysis payload.

    Defaults: score 50 (clamped to [0, 100]), empty signals, strategy
    ``scope``, a generic reasoning line.
    """
    data = extract_json_object(text)
    if data is None:
        logger.debug("No JSON object in analysis response")
        return None

    return AmbiguityAnalysis(
        score=clamp_score(data.get("score")),
        signals=parse_signals(data.get("signals")),
        recommended_strategy=parse_strategy(
            _pick(data, "recommended_strategy", "recommendedStrategy")
        ),
        reasoning=_optional_string(data.get("reasoning")) or DEFAULT_ANALYSIS_REASONING,
    )


def parse_intent(raw: Any) -> ExtractedIntent | None:
    if not isinstance(raw, dict):
        return None
    return ExtractedIntent(
        goal=_optional_string(raw.get("goal")),
        scope=_optional_string(raw.get("scope")),
        constraints=_string_list(raw.get("constraints")),
        success_criteria=_string_list(_pick(raw, "success_criteria", "successCriteria")),
        emotional_context=_optional_string(_pick(raw, "emotional_context", "emotionalContext")),
    )


def parse_synthesis(text: str) -> tuple[str, ExtractedIntent] | None:
    """
    Parse a findings-synthesis payload into (summary, intent).

    The intent object is required; the summary defaults to a generic line.
    """
    data = extract_json_object(text)
    if data is None:
        return None
    intent = parse_intent(_pick(data, "extracted_intent", "extractedIntent"))
    if intent is None:
        logger.debug("Synthesis payload lacks an intent object")
        return None
    summary = _optional_string(data.get("summary")) or DEFAULT_SYNTHESIS_SUMMARY
    return summary, intent


def parse_agent_spec(text: str, intent: ExtractedIntent) -> AgentSpecification | None:
    """
    Parse an agent-design payload, backfilling from ``intent``.

    ``system_prompt`` is left empty when absent; the generator fills it.
    """
    data = extract_json_object(text)
    if data is None:
        return None

    raw_scope = data.get("scope")
    scope = AgentScope()
    if isinstance(raw_scope, dict):
        scope = AgentScope(
            included=_string_list(raw_scope.get("included")),
            excluded=_string_list(raw_scope.get("excluded")),
        )

    complexity = str(_pick(data, "estimated_complexity", "estimatedComplexity") or "").lower()
    architecture = str(_pick(data, "suggested_architecture", "suggestedArchitecture") or "").lower()

    return AgentSpecification(
        agent_id=str(uuid.uuid4()),
        name=_optional_string(data.get("name")) or DEFAULT_AGENT_NAME,
        purpose=_optional_string(data.get("purpose")) or intent.goal or DEFAULT_AGENT_PURPOSE,
        capabilities=_string_list(data.get("capabilities")),
        scope=scope,
        constraints=_string_list(data.get("constraints")) or list(intent.constraints),
        success_criteria=_string_list(_pick(data, "success_criteria", "successCriteria"))
        or list(intent.success_criteria),
        estimated_complexity=complexity if complexity in COMPLEXITY_LEVELS else "moderate",
        suggested_architecture=architecture if architecture in ARCHITECTURES else "single",
        system_prompt=_optional_string(_pick(data, "system_prompt", "systemPrompt")) or "",
    )


def clean_question(text: str) -> str:
    """Strip quoting and leading labels from a generated question."""
    question = text.strip().strip('"').strip()
    for prefix in ("Question:", "Q:"):
        if question.lower().startswith(prefix.lower()):
            question = question[len(prefix) :].strip()
    return question


__all__ = [
    "DEFAULT_ANALYSIS_REASONING",
    "DEFAULT_ANALYSIS_SCORE",
    "DEFAULT_SYNTHESIS_SUMMARY",
    "clamp_score",
    "clean_question",
    "extract_json_object",
    "parse_agent_spec",
    "parse_analysis",
    "parse_intent",
    "parse_signals",
    "parse_strategy",
    "parse_synthesis",
]
