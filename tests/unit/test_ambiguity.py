"""
Unit tests for ambiguity scoring.
"""

import asyncio
import json

import pytest

from metaintent.adapters import LLMAdapter
from metaintent.ambiguity import (
    HEURISTIC_REASONING,
    AmbiguityDetector,
    heuristic_analysis,
    heuristic_score,
    heuristic_signals,
)
from metaintent.types import ClarificationStrategy, EmotionType, LLMBackend, LLMResponse


class SlowAdapter(LLMAdapter):
    backend = LLMBackend.CLAUDE

    async def invoke(self, prompt, config):
        await asyncio.sleep(1)
        return LLMResponse(content='{"score": 5}')


class TestHeuristicScore:
    """Exact scores for fixed inputs."""

    def test_vague_request_scores_high(self):
        # two vague words, short with no specifics markers
        assert heuristic_score("i want to build something with stuff") == 70

    def test_concrete_request_scores_zero(self):
        text = (
            "Build a REST API with Node.js and Express for managing "
            "500 user accounts with JWT authentication"
        )
        assert heuristic_score(text) == 0

    def test_generic_action_without_specifics(self):
        assert heuristic_score("I want to build something") == 70

    def test_single_word(self):
        assert heuristic_score("skip") == 50

    def test_question_mark_and_hedging(self):
        assert heuristic_score("maybe?") == 85

    def test_clamped_to_100(self):
        text = "maybe perhaps kind of sort of i think not sure stuff things whatever"
        assert heuristic_score(text) == 100

    def test_empty_string(self):
        assert heuristic_score("") == 50


class TestHeuristicSignals:
    def test_vague_terms_reported(self):
        signals = heuristic_signals("i want to build something with stuff")
        assert "stuff" in signals.vague_terms
        assert "something" in signals.vague_terms
        assert signals.hedging_language == []

    def test_hedging_reported(self):
        signals = heuristic_signals("Maybe I think it could work")
        assert signals.hedging_language == ["maybe", "i think"]

    def test_emotional_markers(self):
        signals = heuristic_signals("I'm so frustrated and confused by this")
        types = {m.type: m.confidence for m in signals.emotional_markers}
        assert types == {EmotionType.FRUSTRATION: 0.7, EmotionType.CONFUSION: 0.8}

    def test_no_markers_for_neutral_text(self):
        assert heuristic_signals("Deploy the billing service").emotional_markers == []


class TestHeuristicAnalysis:
    def test_strategy_multi_above_70(self):
        analysis = heuristic_analysis("maybe?")
        assert analysis.recommended_strategy == ClarificationStrategy.MULTI
        assert analysis.reasoning == HEURISTIC_REASONING

    def test_strategy_scope_at_70(self):
        analysis = heuristic_analysis("I want to build something")
        assert analysis.score == 70
        assert analysis.recommended_strategy == ClarificationStrategy.SCOPE

    def test_deterministic(self):
        first = heuristic_analysis("kind of want a thing for stuff?")
        second = heuristic_analysis("kind of want a thing for stuff?")
        assert first == second


class TestAmbiguityDetector:
    @pytest.mark.asyncio
    async def test_without_gateway_uses_heuristic(self):
        detector = AmbiguityDetector()
        analysis = await detector.analyze("I want to build something")
        assert analysis.score == 70
        assert analysis.reasoning == HEURISTIC_REASONING

    @pytest.mark.asyncio
    async def test_backend_analysis_parsed(self, make_gateway, scripted_adapter):
        payload = {
            "score": 42,
            "signals": {"vague_terms": ["thing"], "hedging_language": []},
            "recommended_strategy": "outcomes",
            "reasoning": "Outcome is unclear",
        }
        primary = scripted_adapter([f"Here you go:\n{json.dumps(payload)}"])
        detector = AmbiguityDetector(make_gateway(primary))

        analysis = await detector.analyze("I want a thing")

        assert analysis.score == 42
        assert analysis.signals.vague_terms == ["thing"]
        assert analysis.recommended_strategy == ClarificationStrategy.OUTCOMES
        assert analysis.reasoning == "Outcome is unclear"

    @pytest.mark.asyncio
    async def test_backend_score_clamped(self, make_gateway, scripted_adapter):
        primary = scripted_adapter(['{"score": 180}'])
        analysis = await AmbiguityDetector(make_gateway(primary)).analyze("x")
        assert analysis.score == 100

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back(self, make_gateway, scripted_adapter):
        primary = scripted_adapter(["I cannot produce JSON today"])
        analysis = await AmbiguityDetector(make_gateway(primary)).analyze("skip")
        assert analysis.score == 50
        assert analysis.reasoning == HEURISTIC_REASONING

    @pytest.mark.asyncio
    async def test_backend_outage_falls_back(self, offline_gateway):
        analysis = await AmbiguityDetector(offline_gateway).analyze("skip")
        assert analysis.score == 50
        assert analysis.reasoning == HEURISTIC_REASONING

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, make_gateway):
        detector = AmbiguityDetector(make_gateway(SlowAdapter()), timeout=0.05)
        analysis = await detector.analyze("skip")
        assert analysis.score == 50
        assert analysis.reasoning == HEURISTIC_REASONING

    @pytest.mark.asyncio
    async def test_history_included_in_prompt(self, make_gateway, scripted_adapter):
        primary = scripted_adapter(['{"score": 10}'])
        await AmbiguityDetector(make_gateway(primary)).analyze(
            "Add auth", ["Build a todo app", "For my team"]
        )
        assert "Previous Context:\nBuild a todo app\nFor my team" in primary.prompts[0]
