"""
Property-based tests for ambiguity scoring, drift and backoff.
"""

import random

import pytest
from hypothesis import given
from hypothesis import strategies as st

from metaintent.ambiguity import heuristic_analysis, heuristic_score
from metaintent.goal_echo import confidence_stars, progress_bar
from metaintent.retry import add_jitter, backoff_delay
from metaintent.snapshots import calculate_drift
from metaintent.types import ClarificationStrategy, ExtractedIntent, IntentSnapshot, RetryConfig

item_lists = st.lists(st.text(min_size=1, max_size=20), max_size=5, unique=True)


def _snapshot(score, goal=None, constraints=(), criteria=()):
    return IntentSnapshot(
        snapshot_id=f"snap-{score}",
        session_id="s1",
        timestamp=0,
        ambiguity_score=score,
        user_input="",
        extracted_intent=ExtractedIntent(
            goal=goal, constraints=list(constraints), success_criteria=list(criteria)
        ),
        confidence=0.5,
    )


@pytest.mark.hypothesis
class TestHeuristicScoreProperties:
    @given(st.text(max_size=300))
    def test_score_in_range(self, text):
        assert 0 <= heuristic_score(text) <= 100

    @given(st.text(max_size=300))
    def test_deterministic(self, text):
        assert heuristic_analysis(text) == heuristic_analysis(text)

    @given(st.text(max_size=300))
    def test_strategy_follows_score(self, text):
        analysis = heuristic_analysis(text)
        expected = ClarificationStrategy.MULTI if analysis.score > 70 else ClarificationStrategy.SCOPE
        assert analysis.recommended_strategy == expected

    @given(st.text(max_size=300))
    def test_question_mark_never_lowers_score(self, text):
        assert heuristic_score(f"{text}?") >= heuristic_score(text)


@pytest.mark.hypothesis
class TestDriftProperties:
    @given(
        st.integers(0, 100),
        st.integers(0, 100),
        st.one_of(st.none(), st.text(max_size=20)),
        st.one_of(st.none(), st.text(max_size=20)),
        item_lists,
        item_lists,
    )
    def test_magnitude_in_unit_interval(self, prev_score, curr_score, prev_goal, curr_goal, constraints, criteria):
        drift = calculate_drift(
            _snapshot(prev_score, prev_goal),
            _snapshot(curr_score, curr_goal, constraints, criteria),
        )
        assert 0.0 <= drift.magnitude <= 1.0
        assert (drift.magnitude == 0.0) == (drift.changes == [])

    @given(st.integers(0, 100), item_lists, st.text(min_size=1, max_size=20))
    def test_adding_constraint_never_lowers_magnitude(self, score, constraints, extra):
        previous = _snapshot(score)
        without = calculate_drift(previous, _snapshot(score, constraints=constraints))
        more = constraints if extra in constraints else constraints + [extra]
        with_extra = calculate_drift(previous, _snapshot(score, constraints=more))
        assert with_extra.magnitude >= without.magnitude


@pytest.mark.hypothesis
class TestFormattingProperties:
    @given(st.floats(0.0, 1.0))
    def test_five_stars_total(self, confidence):
        assert len(confidence_stars(confidence)) == 5

    @given(st.integers(0, 100))
    def test_progress_bar_width(self, percent):
        bar = progress_bar(percent)
        assert len(bar.split(" ")[0]) == 10
        assert bar.endswith(f"{percent}%")


@pytest.mark.hypothesis
class TestBackoffProperties:
    @given(st.floats(0.0, 60.0, allow_nan=False), st.integers(0, 2**32 - 1))
    def test_jitter_within_half_to_full(self, delay, seed):
        jittered = add_jitter(delay, random.Random(seed))
        assert delay * 0.5 <= jittered <= delay

    @given(st.integers(1, 30))
    def test_delay_monotone_and_capped(self, attempt):
        config = RetryConfig(initial_delay=0.5, max_delay=10.0, backoff_multiplier=2.0)
        assert backoff_delay(config, attempt) <= config.max_delay
        assert backoff_delay(config, attempt + 1) >= backoff_delay(config, attempt)
