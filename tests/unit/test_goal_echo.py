"""
Unit tests for goal echo formatting.
"""

import pytest

from metaintent.goal_echo import (
    GoalEchoGenerator,
    confidence_stars,
    progress_bar,
    summarize_intent,
)
from metaintent.types import ExtractedIntent, SubAgentType


@pytest.fixture
def echo():
    return GoalEchoGenerator()


class TestHelpers:
    @pytest.mark.parametrize(
        "confidence,stars",
        [
            (0.0, "☆☆☆☆☆"),
            (0.1, "⭐☆☆☆☆"),
            (0.3, "⭐⭐☆☆☆"),
            (0.5, "⭐⭐⭐☆☆"),
            (0.8, "⭐⭐⭐⭐☆"),
            (1.0, "⭐⭐⭐⭐⭐"),
        ],
    )
    def test_confidence_stars(self, confidence, stars):
        assert confidence_stars(confidence) == stars

    def test_progress_bar(self):
        assert progress_bar(30) == "███░░░░░░░ 30%"
        assert progress_bar(45) == "█████░░░░░ 45%"
        assert progress_bar(100) == "██████████ 100%"

    def test_summarize_intent(self):
        intent = ExtractedIntent(goal="Track runs", scope="Personal", constraints=["Offline", "Free"])
        assert summarize_intent(intent) == "Track runs with scope: Personal considering: Offline, Free"

    def test_summarize_empty_intent(self):
        assert summarize_intent(ExtractedIntent()) == "Intent being clarified"


class TestGoalEchoGenerator:
    def test_format_echo_sections(self, echo):
        intent = ExtractedIntent(
            goal="Track runs",
            constraints=["Offline"],
            success_criteria=["One-tap logging"],
            emotional_context="Excited",
        )
        text = echo.format_echo(intent, 0.8)

        assert text.startswith("🎯 **Here's what I understand so far:**\n\n")
        assert "**Goal:** Track runs\n\n" in text
        assert "**Scope:**" not in text
        assert "**Constraints:**\n  • Offline\n\n" in text
        assert "**Success Looks Like:**\n  • One-tap logging\n\n" in text
        assert "**Context:** Excited\n\n" in text
        assert "**Confidence:** 80% ⭐⭐⭐⭐☆\n\n" in text
        assert text.endswith("Should we proceed with generating your agent?")

    @pytest.mark.parametrize(
        "confidence,closing",
        [
            (0.5, "🔄 We're making progress! Let's refine this a bit more."),
            (0.3, "🤔 Let's clarify a few more things to get this just right."),
        ],
    )
    def test_closing_line_by_confidence(self, echo, confidence, closing):
        assert echo.format_echo(ExtractedIntent(), confidence).endswith(closing)

    def test_needs_confirmation(self, echo):
        intent = ExtractedIntent(goal="Track runs")
        assert echo.generate_echo(intent, 0.8, 30).needs_confirmation is True
        assert echo.generate_echo(intent, 0.8, 40).needs_confirmation is False
        assert echo.generate_echo(intent, 0.7, 10).needs_confirmation is False

    def test_generate_echo_fields(self, echo):
        result = echo.generate_echo(ExtractedIntent(goal="Track runs"), 0.5, 50)
        assert result.summary == "Track runs"
        assert result.confidence == 0.5
        assert "**Goal:** Track runs" in result.formatted_display

    def test_progress_update_large_improvement(self, echo):
        text = echo.generate_progress_update(70, 30, 2)
        assert text.startswith("📊 **Progress Update** (Question 2):\n\n")
        assert "🎉 Great progress! Clarity improved by 40 points." in text
        assert "**Current Clarity:** 70%" in text
        assert "███████░░░ 70%" in text

    @pytest.mark.parametrize(
        "previous,current,line",
        [
            (60, 45, "✨ Good! We're getting clearer (15 points better)."),
            (60, 55, "👍 Making progress (5 points clearer)."),
            (60, 60, "🤔 Let's try a different angle to improve clarity."),
            (40, 70, "🤔 Let's try a different angle to improve clarity."),
        ],
    )
    def test_progress_update_tiers(self, echo, previous, current, line):
        assert line in echo.generate_progress_update(previous, current, 1)

    def test_clarification_prompt_icons(self, echo):
        assert (
            echo.generate_clarification_prompt(SubAgentType.SCOPE, "Who is it for?")
            == "🎯 **Scope Clarification:**\n\nWho is it for?"
        )
        assert echo.generate_clarification_prompt("outcomes", "q").startswith("🏆 **Outcomes")

    def test_clarification_prompt_unknown_type(self, echo):
        assert (
            echo.generate_clarification_prompt("budget", "How much?")
            == "❓ **Budget Clarification:**\n\nHow much?"
        )
