"""
Session replay: how a clarification session unfolded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .types import ConversationTurn, MetaLoopState

BREAKTHROUGH_DROP = 20


@dataclass
class KeyMoment:
    timestamp: int
    description: str


@dataclass
class SessionReplay:
    session_id: str
    total_iterations: int
    conversation_history: list[ConversationTurn] = field(default_factory=list)
    ambiguity_progression: list[dict[str, Any]] = field(default_factory=list)
    intent_evolution: list[dict[str, Any]] = field(default_factory=list)
    key_moments: list[KeyMoment] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "total_iterations": self.total_iterations,
            "conversation_history": [
                {"role": t.role.value, "content": t.content, "timestamp": t.timestamp}
                for t in self.conversation_history
            ],
            "ambiguity_progression": list(self.ambiguity_progression),
            "intent_evolution": list(self.intent_evolution),
            "key_moments": [
                {"timestamp": m.timestamp, "description": m.description} for m in self.key_moments
            ],
        }

    def summary_lines(self) -> list[str]:
        """Key moments as ``HH:MM:SS  description`` lines, oldest first."""
        return [
            f"{datetime.fromtimestamp(m.timestamp / 1000).strftime('%H:%M:%S')}  {m.description}"
            for m in self.key_moments
        ]


def identify_key_moments(state: MetaLoopState) -> list[KeyMoment]:
    moments: list[KeyMoment] = []

    if state.conversation_history:
        moments.append(KeyMoment(state.conversation_history[0].timestamp, "Session started"))

    snapshots = state.intent_snapshots
    for prev, curr in zip(snapshots, snapshots[1:]):
        drop = prev.ambiguity_score - curr.ambiguity_score
        if drop > BREAKTHROUGH_DROP:
            moments.append(
                KeyMoment(
                    curr.timestamp, f"Major clarity breakthrough ({drop} point improvement)"
                )
            )

    for snapshot in snapshots:
        drift = snapshot.drift_vector
        if drift and any("Goal changed" in change for change in drift.changes):
            moments.append(KeyMoment(snapshot.timestamp, "User pivoted their goal"))

    return sorted(moments, key=lambda m: m.timestamp)


def build_replay(state: MetaLoopState) -> SessionReplay:
    return SessionReplay(
        session_id=state.session_id,
        total_iterations=state.iteration,
        conversation_history=list(state.conversation_history),
        ambiguity_progression=[
            {"timestamp": s.timestamp, "score": s.ambiguity_score, "confidence": s.confidence}
            for s in state.intent_snapshots
        ],
        intent_evolution=[
            {
                "timestamp": s.timestamp,
                "intent": s.extracted_intent.to_dict(),
                "drift_vector": s.drift_vector.to_dict() if s.drift_vector else None,
            }
            for s in state.intent_snapshots
        ],
        key_moments=identify_key_moments(state),
    )


__all__ = ["KeyMoment", "SessionReplay", "build_replay", "identify_key_moments"]
