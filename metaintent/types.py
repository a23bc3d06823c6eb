"""
Core types for the MetaIntent clarification engine.

Plain dataclasses and enums shared by every component: backend
request/response records, ambiguity analysis, sub-agents, intent
snapshots, loop state, fallback and cache records.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# =============================================================================
# Backend adapter records
# =============================================================================


class LLMBackend(str, Enum):
    """Identity of a text-generation backend."""

    CLAUDE = "claude"
    NIM = "nim"


@dataclass
class LLMConfig:
    """Generation parameters passed to a backend."""

    max_tokens: int = 1024
    temperature: float = 0.7
    stop_sequences: list[str] | None = None
    system_prompt: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> LLMConfig:
        if not data:
            return cls()
        return cls(
            max_tokens=int(data.get("max_tokens", 1024)),
            temperature=float(data.get("temperature", 0.7)),
            stop_sequences=data.get("stop_sequences"),
            system_prompt=data.get("system_prompt"),
        )


DEFAULT_LLM_CONFIG = LLMConfig(max_tokens=1024, temperature=0.7)


@dataclass
class TokenUsage:
    """Token counts reported by a backend."""

    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class LLMResponse:
    """Response from a text-generation backend."""

    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LLMResponse:
        usage = data.get("usage") or {}
        return cls(
            content=str(data.get("content", "")),
            usage=TokenUsage(
                input_tokens=int(usage.get("input_tokens", 0)),
                output_tokens=int(usage.get("output_tokens", 0)),
            ),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class RetryConfig:
    """Exponential backoff settings (delays in seconds)."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0


# =============================================================================
# Ambiguity analysis
# =============================================================================


class EmotionType(str, Enum):
    FRUSTRATION = "frustration"
    EXCITEMENT = "excitement"
    CONFUSION = "confusion"
    ANXIETY = "anxiety"
    NEUTRAL = "neutral"


class ClarificationStrategy(str, Enum):
    """Clarification strategy recommended by the ambiguity scorer."""

    SCOPE = "scope"
    CONSTRAINTS = "constraints"
    OUTCOMES = "outcomes"
    EMOTIONS = "emotions"
    MULTI = "multi"


@dataclass
class EmotionalMarker:
    """An emotional undertone detected in user input."""

    type: EmotionType
    confidence: float
    evidence: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "confidence": self.confidence, "evidence": self.evidence}


@dataclass
class AmbiguitySignals:
    """Structured evidence behind an ambiguity score."""

    hedging_language: list[str] = field(default_factory=list)
    contradictions: list[str] = field(default_factory=list)
    emotional_markers: list[EmotionalMarker] = field(default_factory=list)
    vague_terms: list[str] = field(default_factory=list)
    multiple_topics: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hedging_language": list(self.hedging_language),
            "contradictions": list(self.contradictions),
            "emotional_markers": [m.to_dict() for m in self.emotional_markers],
            "vague_terms": list(self.vague_terms),
            "multiple_topics": list(self.multiple_topics),
        }


@dataclass
class AmbiguityAnalysis:
    """Result of scoring one piece of user input."""

    score: int
    signals: AmbiguitySignals = field(default_factory=AmbiguitySignals)
    recommended_strategy: ClarificationStrategy = ClarificationStrategy.SCOPE
    reasoning: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "signals": self.signals.to_dict(),
            "recommended_strategy": self.recommended_strategy.value,
            "reasoning": self.reasoning,
        }


# =============================================================================
# Sub-agents
# =============================================================================


class SubAgentType(str, Enum):
    """Facet of intent a clarification agent is responsible for."""

    SCOPE = "scope"
    CONSTRAINTS = "constraints"
    OUTCOMES = "outcomes"
    EMOTIONS = "emotions"


class AgentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class QAPair:
    """One question asked by an agent and the answer it received."""

    question: str
    answer: str
    timestamp: int = field(default_factory=now_ms)


@dataclass
class SubAgentSandbox:
    """Private working area of a sub-agent."""

    context: dict[str, Any] = field(default_factory=dict)
    findings: list[str] = field(default_factory=list)
    confidence: float = 0.0
    conversation_history: list[QAPair] = field(default_factory=list)


@dataclass
class SubAgent:
    """A focused clarification worker."""

    agent_id: str
    type: SubAgentType
    status: AgentStatus = AgentStatus.ACTIVE
    sandbox: SubAgentSandbox = field(default_factory=SubAgentSandbox)
    current_question: str | None = None
    questions_asked: int = 0
    max_questions: int = 2

    @property
    def is_active(self) -> bool:
        return self.status == AgentStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "type": self.type.value,
            "status": self.status.value,
            "findings": list(self.sandbox.findings),
            "confidence": self.sandbox.confidence,
            "current_question": self.current_question,
            "questions_asked": self.questions_asked,
            "max_questions": self.max_questions,
        }


@dataclass
class SynthesisResult:
    """Findings from a batch of agents merged into one intent."""

    summary: str
    extracted_intent: ExtractedIntent
    confidence: float


# =============================================================================
# Intent snapshots
# =============================================================================


@dataclass
class ExtractedIntent:
    """The system's current understanding of what the user wants."""

    goal: str | None = None
    scope: str | None = None
    constraints: list[str] = field(default_factory=list)
    success_criteria: list[str] = field(default_factory=list)
    emotional_context: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ExtractedIntent:
        if not data:
            return cls()
        return cls(
            goal=data.get("goal"),
            scope=data.get("scope"),
            constraints=list(data.get("constraints") or []),
            success_criteria=list(data.get("success_criteria") or []),
            emotional_context=data.get("emotional_context"),
        )


@dataclass
class DriftVector:
    """Change between two consecutive intent snapshots."""

    from_snapshot_id: str
    changes: list[str] = field(default_factory=list)
    reason: str = ""
    magnitude: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DriftVector:
        return cls(
            from_snapshot_id=data["from_snapshot_id"],
            changes=list(data.get("changes") or []),
            reason=data.get("reason", ""),
            magnitude=float(data.get("magnitude", 0.0)),
        )


@dataclass
class IntentSnapshot:
    """Versioned capture of the understood intent at one turn."""

    snapshot_id: str
    session_id: str
    timestamp: int
    ambiguity_score: int
    user_input: str
    extracted_intent: ExtractedIntent
    confidence: float
    drift_vector: DriftVector | None = None
    status: SessionStatus | None = None  # session status once this snapshot was taken

    def to_dict(self) -> dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "ambiguity_score": self.ambiguity_score,
            "user_input": self.user_input,
            "extracted_intent": self.extracted_intent.to_dict(),
            "confidence": self.confidence,
            "drift_vector": self.drift_vector.to_dict() if self.drift_vector else None,
            "status": self.status.value if self.status else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IntentSnapshot:
        drift = data.get("drift_vector")
        status = data.get("status")
        return cls(
            snapshot_id=data["snapshot_id"],
            session_id=data["session_id"],
            timestamp=int(data["timestamp"]),
            ambiguity_score=int(data["ambiguity_score"]),
            user_input=data.get("user_input", ""),
            extracted_intent=ExtractedIntent.from_dict(data.get("extracted_intent")),
            confidence=float(data.get("confidence", 0.0)),
            drift_vector=DriftVector.from_dict(drift) if drift else None,
            status=SessionStatus(status) if status else None,
        )


@dataclass
class GoalEcho:
    """Human-readable restatement of the current intent."""

    summary: str
    confidence: float
    needs_confirmation: bool
    formatted_display: str


# =============================================================================
# Clarification loop
# =============================================================================


class SessionStatus(str, Enum):
    DETECTING = "detecting"
    CLARIFYING = "clarifying"
    SYNTHESIZING = "synthesizing"
    READY = "ready"
    COMPLETED = "completed"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ConversationTurn:
    role: Role
    content: str
    timestamp: int = field(default_factory=now_ms)


@dataclass
class MetaLoopState:
    """Per-session state of the clarification loop."""

    session_id: str
    iteration: int = 0
    current_ambiguity_score: int = 0
    previous_ambiguity_score: int | None = None
    active_sub_agents: list[SubAgent] = field(default_factory=list)
    conversation_history: list[ConversationTurn] = field(default_factory=list)
    intent_snapshots: list[IntentSnapshot] = field(default_factory=list)
    current_goal_echo: GoalEcho | None = None
    status: SessionStatus = SessionStatus.DETECTING
    rounds: int = 0
    updated_at: int = field(default_factory=now_ms)

    def add_turn(self, role: Role, content: str) -> None:
        self.conversation_history.append(ConversationTurn(role=role, content=content))
        self.updated_at = now_ms()

    @property
    def latest_snapshot(self) -> IntentSnapshot | None:
        return self.intent_snapshots[-1] if self.intent_snapshots else None


@dataclass
class LoopResult:
    """What the loop hands back to its caller for one turn."""

    state: MetaLoopState
    response: str
    needs_clarification: bool


# =============================================================================
# Fallback cascade
# =============================================================================


class FallbackStrategy(str, Enum):
    ALTERNATIVE_BACKEND = "alternative_backend"
    CACHE = "cache"
    STATIC_FLOW = "static_flow"
    MANUAL = "manual"


@dataclass
class BackendRequest:
    """
    A backend call described as data, so it can be replayed by the
    fallback cascade and keyed by the cache.
    """

    type: str
    prompt: str
    config: LLMConfig = field(default_factory=LLMConfig)
    context: dict[str, Any] | None = None

    def cache_shape(self) -> dict[str, Any]:
        """Fields that identify this request for caching."""
        return {"type": self.type, "input": self.prompt, "context": self.context}


@dataclass
class FallbackRequest:
    original_request: BackendRequest
    failure_reason: str
    attempted_backends: list[LLMBackend] = field(default_factory=list)
    session_id: str = "system"


@dataclass
class FallbackResponse:
    strategy: FallbackStrategy
    response: Any = None
    requires_user_input: bool = False


# =============================================================================
# Cache and logging records
# =============================================================================


@dataclass
class CacheEntry:
    """A cached backend response stored in the blob store."""

    cache_key: str
    request: dict[str, Any]
    response: Any
    timestamp: int
    ttl: int  # seconds
    hit_count: int = 0
    llm_backend: str = LLMBackend.CLAUDE.value

    def is_valid(self, now: int | None = None) -> bool:
        """Valid only while now - timestamp < ttl."""
        current = now_ms() if now is None else now
        return current - self.timestamp < self.ttl * 1000

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CacheEntry:
        return cls(
            cache_key=data["cache_key"],
            request=dict(data.get("request") or {}),
            response=data.get("response"),
            timestamp=int(data["timestamp"]),
            ttl=int(data["ttl"]),
            hit_count=int(data.get("hit_count", 0)),
            llm_backend=data.get("llm_backend", LLMBackend.CLAUDE.value),
        )


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass
class LogEntry:
    timestamp: int
    session_id: str
    component: str
    level: LogLevel
    message: str
    data: dict[str, Any] | None = None
    cost: float | None = None
    duration: float | None = None

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["level"] = self.level.value
        return result


# =============================================================================
# Agent generation
# =============================================================================


@dataclass
class AgentScope:
    included: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)


@dataclass
class AgentSpecification:
    """Design of the agent generated from a refined intent."""

    agent_id: str
    name: str
    purpose: str
    capabilities: list[str] = field(default_factory=list)
    scope: AgentScope = field(default_factory=AgentScope)
    constraints: list[str] = field(default_factory=list)
    success_criteria: list[str] = field(default_factory=list)
    estimated_complexity: str = "moderate"
    suggested_architecture: str = "single"
    system_prompt: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = [
    "AgentScope",
    "AgentSpecification",
    "AgentStatus",
    "AmbiguityAnalysis",
    "AmbiguitySignals",
    "BackendRequest",
    "CacheEntry",
    "ClarificationStrategy",
    "ConversationTurn",
    "DEFAULT_LLM_CONFIG",
    "DriftVector",
    "EmotionType",
    "EmotionalMarker",
    "ExtractedIntent",
    "FallbackRequest",
    "FallbackResponse",
    "FallbackStrategy",
    "GoalEcho",
    "IntentSnapshot",
    "LLMBackend",
    "LLMConfig",
    "LLMResponse",
    "LogEntry",
    "LogLevel",
    "LoopResult",
    "MetaLoopState",
    "QAPair",
    "RetryConfig",
    "Role",
    "SessionStatus",
    "SubAgent",
    "SubAgentSandbox",
    "SubAgentType",
    "SynthesisResult",
    "TokenUsage",
    "now_ms",
]
