"""
The clarification loop: one state machine per session.

    detecting -> clarifying -> synthesizing -> ready -> completed
                     ^              |
                     +--------------+  (another round of agents)

Each turn scores the input, drives the sub-agents, snapshots the
understood intent and answers with a goal echo and/or the next
clarifying questions. Live sessions are cached in-process and evicted
once idle past the snapshot TTL. The snapshot store is the durable
record, including session status, and sessions missing from the cache
are rebuilt from it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from .adapters import AdapterFactory
from .ambiguity import AmbiguityDetector
from .blob_store import FileBlobStore, InMemoryBlobStore
from .cache import CacheManager
from .config import LoopConfig, MetaIntentConfig
from .errors import SessionNotFoundError, StorageError, ValidationError
from .gateway import ReasoningGateway
from .generator import AgentGenerator, format_specification
from .goal_echo import GoalEchoGenerator
from .intent_classifier import ReplyKind, classify_reply
from .logger import StructuredLogger
from .orchestrator import SubAgentOrchestrator
from .snapshots import (
    DEFAULT_SNAPSHOT_TTL_S,
    InMemorySnapshotStore,
    IntentSnapshotManager,
    SnapshotStore,
    SQLiteSnapshotStore,
)
from .types import (
    AgentSpecification,
    AgentStatus,
    AmbiguityAnalysis,
    ExtractedIntent,
    IntentSnapshot,
    LoopResult,
    MetaLoopState,
    Role,
    SessionStatus,
    now_ms,
)

logger = logging.getLogger(__name__)

COMPONENT = "MetaLoopEngine"

INITIAL_CONFIDENCE = 0.3
READY_MESSAGE = "Ready to generate your agent!"
SKIP_MESSAGE = "✅ Proceeding with the information provided. Ready to generate your agent!"
ROUND_CAP_MESSAGE = (
    "✅ We've covered the key questions. "
    "Proceeding with the information provided. Ready to generate your agent!"
)
SKIP_FINDING = "User indicated uncertainty - proceeding with available information"
ALL_COMPLETE_MESSAGE = "✅ All clarifications complete!"
ERROR_MESSAGE = (
    "😔 Sorry, something went wrong while processing your request. "
    "Please try again, or start a new session to reset the conversation."
)


def intent_from_analysis(analysis: AmbiguityAnalysis, text: str) -> ExtractedIntent:
    """First-turn intent: a goal clipped from the input plus any emotional context."""
    intent = ExtractedIntent()
    if len(text) > 10:
        intent.goal = text[:100]
    markers = analysis.signals.emotional_markers
    if markers:
        intent.emotional_context = f"User shows: {', '.join(m.type.value for m in markers)}"
    return intent


class MetaLoopEngine:
    """
    Drives clarification sessions.

    Example:
        engine = MetaLoopEngine.from_config(MetaIntentConfig.from_env())
        result = await engine.start_session("s1", "I want to build something")
        while result.needs_clarification:
            result = await engine.continue_session("s1", input("> "))
    """

    def __init__(
        self,
        detector: AmbiguityDetector | None = None,
        orchestrator: SubAgentOrchestrator | None = None,
        snapshots: IntentSnapshotManager | None = None,
        echo: GoalEchoGenerator | None = None,
        generator: AgentGenerator | None = None,
        structured_logger: StructuredLogger | None = None,
        loop_config: LoopConfig | None = None,
        gateway: ReasoningGateway | None = None,
        session_ttl_seconds: int = DEFAULT_SNAPSHOT_TTL_S,
    ):
        self.config = loop_config or LoopConfig()
        self.session_ttl_seconds = session_ttl_seconds
        self.detector = detector or AmbiguityDetector(gateway, timeout=self.config.analysis_timeout)
        self.orchestrator = orchestrator or SubAgentOrchestrator(
            gateway, max_questions=self.config.max_questions_per_agent
        )
        self.snapshots = snapshots or IntentSnapshotManager()
        self.echo = echo or GoalEchoGenerator()
        self.generator = generator or AgentGenerator(gateway)
        self.log = structured_logger or StructuredLogger()
        self.gateway = gateway
        self._sessions: dict[str, MetaLoopState] = {}

    @classmethod
    def from_config(
        cls,
        config: MetaIntentConfig,
        factory: AdapterFactory | None = None,
        snapshot_store: SnapshotStore | None = None,
    ) -> MetaLoopEngine:
        """Wire every component from configuration."""
        factory = factory or AdapterFactory(config.backend)

        log_store = (
            FileBlobStore(Path(config.logging.log_dir).expanduser())
            if config.logging.log_dir
            else None
        )
        structured_logger = StructuredLogger(log_store, buffer_size=config.logging.buffer_size)

        cache_store = (
            FileBlobStore(Path(config.cache.cache_dir).expanduser())
            if config.cache.cache_dir
            else InMemoryBlobStore()
        )
        cache = CacheManager(cache_store, ttl_seconds=config.cache.ttl_seconds)

        if snapshot_store is None:
            snapshot_store = (
                SQLiteSnapshotStore(
                    config.storage.db_path, ttl_seconds=config.storage.snapshot_ttl_seconds
                )
                if config.storage.db_path
                else InMemorySnapshotStore()
            )

        gateway = ReasoningGateway(
            factory, cache, structured_logger, retry_config=config.retry
        )
        return cls(
            snapshots=IntentSnapshotManager(snapshot_store),
            structured_logger=structured_logger,
            loop_config=config.loop,
            gateway=gateway,
            session_ttl_seconds=config.storage.snapshot_ttl_seconds,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    async def start_session(self, session_id: str, text: str) -> LoopResult:
        """
        Open a session with the user's first request.

        Raises:
            ValidationError: if ``text`` is empty
        """
        _require_text(text)
        return await self._turn(session_id, lambda: self._start(session_id, text))

    async def continue_session(self, session_id: str, text: str) -> LoopResult:
        """
        Feed the user's reply into a session.

        Unknown sessions are rebuilt from snapshot history, or started
        fresh from ``text`` when there is no history.

        Raises:
            ValidationError: if ``text`` is empty
        """
        _require_text(text)
        return await self._turn(session_id, lambda: self._continue(session_id, text))

    def get_session(self, session_id: str) -> MetaLoopState | None:
        return self._sessions.get(session_id)

    async def get_intent_map(self, session_id: str) -> list[IntentSnapshot]:
        """Full snapshot history of a session, oldest first."""
        return await self.snapshots.get_session_snapshots(session_id)

    def evict_idle_sessions(self, now: int | None = None) -> int:
        """
        Drop live sessions idle longer than ``session_ttl_seconds`` and
        release their agents. Evicted sessions can still be rebuilt from
        snapshot history while it lasts. Returns how many were dropped.
        """
        cutoff = (now if now is not None else now_ms()) - self.session_ttl_seconds * 1000
        idle = [sid for sid, state in self._sessions.items() if state.updated_at <= cutoff]
        for session_id in idle:
            state = self._sessions.pop(session_id)
            self.orchestrator.release(state.active_sub_agents)
        if idle:
            logger.info("Evicted %d idle sessions", len(idle))
        return len(idle)

    async def generate(self, session_id: str) -> AgentSpecification:
        """
        Design the agent for a session that is ready.

        Raises:
            SessionNotFoundError: no live state or snapshot history
            ValidationError: the session is not ready
        """
        self.evict_idle_sessions()
        state = await self._load_state(session_id)
        if state is None:
            raise SessionNotFoundError(session_id)
        if state.status != SessionStatus.READY:
            raise ValidationError(
                f"Session {session_id} is {state.status.value}, not ready", field="status"
            )

        latest = state.latest_snapshot
        intent = latest.extracted_intent if latest else ExtractedIntent()
        history = [turn.content for turn in state.conversation_history]
        try:
            spec = await self.generator.generate_agent(intent, history, session_id)
            state.status = SessionStatus.COMPLETED
            state.add_turn(Role.ASSISTANT, format_specification(spec))
            await self.log.info(session_id, COMPONENT, "Agent generated", {"name": spec.name})
            return spec
        finally:
            await self.log.flush()

    async def close(self) -> None:
        await self.log.flush()
        await self.snapshots.store.close()
        if self.gateway is not None:
            await self.gateway.factory.aclose()

    # =========================================================================
    # Turn handling
    # =========================================================================

    async def _turn(
        self, session_id: str, runner: Callable[[], Awaitable[LoopResult]]
    ) -> LoopResult:
        """Run one turn; unexpected failures become an apologetic reply."""
        self.evict_idle_sessions()
        try:
            return await runner()
        except Exception as e:
            logger.exception("Turn failed for session %s", session_id)
            await self.log.error(session_id, COMPONENT, "Turn failed", {"error": str(e)})
            state = self._sessions.get(session_id) or MetaLoopState(session_id=session_id)
            return LoopResult(state=state, response=ERROR_MESSAGE, needs_clarification=False)
        finally:
            await self.log.flush()

    async def _start(self, session_id: str, text: str) -> LoopResult:
        analysis = await self.detector.analyze(text, session_id=session_id)
        needs_clarification = analysis.score > self.config.clarify_threshold

        replaced = self._sessions.get(session_id)
        if replaced is not None:
            self.orchestrator.release(replaced.active_sub_agents)

        state = MetaLoopState(session_id=session_id, current_ambiguity_score=analysis.score)
        state.add_turn(Role.USER, text)
        self._sessions[session_id] = state

        snapshot = await self.snapshots.create_snapshot(
            session_id,
            text,
            analysis.score,
            intent_from_analysis(analysis, text),
            INITIAL_CONFIDENCE,
            status=SessionStatus.CLARIFYING if needs_clarification else SessionStatus.READY,
        )
        state.intent_snapshots.append(snapshot)
        await self.log.info(
            session_id,
            COMPONENT,
            "Session started",
            {"score": analysis.score, "strategy": analysis.recommended_strategy.value},
        )

        if needs_clarification:
            await self._spawn_round(state, analysis, text)
            response = self._clarification_response(state, analysis)
            return self._reply(state, response, needs_clarification=True)

        state.status = SessionStatus.READY
        state.current_goal_echo = self.echo.generate_echo(
            snapshot.extracted_intent, snapshot.confidence, analysis.score
        )
        response = f"{state.current_goal_echo.formatted_display}\n\n{READY_MESSAGE}"
        return self._reply(state, response, needs_clarification=False)

    async def _continue(self, session_id: str, text: str) -> LoopResult:
        state = await self._load_state(session_id)
        if state is None:
            logger.info("Session %s has no history, starting fresh", session_id)
            return await self._start(session_id, text)

        state.iteration += 1
        state.add_turn(Role.USER, text)
        wants_to_skip = classify_reply(text) == ReplyKind.SKIP

        if state.status in (SessionStatus.READY, SessionStatus.COMPLETED):
            return self._ready_reply(state, READY_MESSAGE)

        if not state.active_sub_agents:
            if wants_to_skip:
                await self._record_ready(state, text, state.current_ambiguity_score)
                return self._ready_reply(state, SKIP_MESSAGE)
            return await self._restart_round(state, text)

        if wants_to_skip:
            for agent in state.active_sub_agents:
                if agent.is_active:
                    agent.status = AgentStatus.COMPLETED
                    agent.sandbox.findings.append(SKIP_FINDING)
        else:
            await asyncio.gather(
                *(
                    self.orchestrator.process_response(agent.agent_id, text)
                    for agent in state.active_sub_agents
                    if agent.is_active
                )
            )

        if all(not agent.is_active for agent in state.active_sub_agents):
            return await self._conclude_round(state, text, wants_to_skip)

        response = await self._next_questions(state)
        return self._reply(state, response, needs_clarification=True)

    async def _conclude_round(
        self, state: MetaLoopState, text: str, wants_to_skip: bool
    ) -> LoopResult:
        session_id = state.session_id
        state.status = SessionStatus.SYNTHESIZING
        agents = state.active_sub_agents
        synthesis = await self.orchestrator.synthesize_findings(agents, session_id)
        self.orchestrator.release(agents)

        analysis = await self.detector.analyze(
            text, [turn.content for turn in state.conversation_history], session_id
        )
        state.previous_ambiguity_score = state.current_ambiguity_score
        state.current_ambiguity_score = analysis.score

        if (
            synthesis.confidence > self.config.ready_confidence
            and analysis.score < self.config.ready_score
        ):
            ready_message = synthesis.summary
        elif wants_to_skip:
            ready_message = SKIP_MESSAGE
        elif state.rounds >= self.config.max_rounds:
            logger.info("Session %s reached %d rounds", session_id, state.rounds)
            ready_message = ROUND_CAP_MESSAGE
        else:
            ready_message = None

        previous = state.latest_snapshot
        snapshot = await self.snapshots.create_snapshot(
            session_id,
            text,
            analysis.score,
            synthesis.extracted_intent,
            synthesis.confidence,
            previous.snapshot_id if previous else None,
            status=SessionStatus.CLARIFYING if ready_message is None else SessionStatus.READY,
        )
        state.intent_snapshots.append(snapshot)
        echo = self.echo.generate_echo(
            synthesis.extracted_intent, synthesis.confidence, analysis.score
        )
        state.current_goal_echo = echo
        await self.log.info(
            session_id,
            COMPONENT,
            "Round synthesized",
            {
                "round": state.rounds,
                "score": analysis.score,
                "confidence": synthesis.confidence,
                "drift": snapshot.drift_vector.magnitude if snapshot.drift_vector else None,
            },
        )

        if ready_message is not None:
            state.status = SessionStatus.READY
            return self._ready_reply(state, ready_message)

        await self._spawn_round(state, analysis, text)
        progress = self.echo.generate_progress_update(
            state.previous_ambiguity_score
            if state.previous_ambiguity_score is not None
            else 100,
            state.current_ambiguity_score,
            state.iteration,
        )
        response = (
            f"{progress}\n\n{echo.formatted_display}\n\n"
            f"{self._clarification_response(state, analysis)}"
        )
        return self._reply(state, response, needs_clarification=True)

    async def _restart_round(self, state: MetaLoopState, text: str) -> LoopResult:
        """Treat a reply to a rebuilt session as the opening of a new round."""
        analysis = await self.detector.analyze(
            text, [turn.content for turn in state.conversation_history], state.session_id
        )
        state.previous_ambiguity_score = state.current_ambiguity_score
        state.current_ambiguity_score = analysis.score

        if analysis.score > self.config.clarify_threshold and state.rounds < self.config.max_rounds:
            await self._spawn_round(state, analysis, text)
            return self._reply(
                state, self._clarification_response(state, analysis), needs_clarification=True
            )

        await self._record_ready(state, text, analysis.score, analysis)
        return self._ready_reply(state, READY_MESSAGE)

    async def _record_ready(
        self,
        state: MetaLoopState,
        text: str,
        score: int,
        analysis: AmbiguityAnalysis | None = None,
    ) -> None:
        """Mark the session ready and persist that with the intent carried forward."""
        previous = state.latest_snapshot
        if previous is not None:
            intent, confidence = previous.extracted_intent, previous.confidence
        else:
            intent = intent_from_analysis(analysis, text) if analysis else ExtractedIntent()
            confidence = INITIAL_CONFIDENCE
        snapshot = await self.snapshots.create_snapshot(
            state.session_id,
            text,
            score,
            intent,
            confidence,
            previous.snapshot_id if previous else None,
            status=SessionStatus.READY,
        )
        state.intent_snapshots.append(snapshot)
        state.status = SessionStatus.READY
        state.current_goal_echo = self.echo.generate_echo(intent, confidence, score)

    async def _spawn_round(
        self, state: MetaLoopState, analysis: AmbiguityAnalysis, text: str
    ) -> None:
        state.status = SessionStatus.CLARIFYING
        state.rounds += 1
        state.active_sub_agents = await self.orchestrator.spawn_agents(
            analysis.recommended_strategy, text, analysis.score, state.session_id
        )

    async def _next_questions(self, state: MetaLoopState) -> str:
        active = [agent for agent in state.active_sub_agents if agent.is_active]
        if not active:
            return ALL_COMPLETE_MESSAGE

        last_message = state.conversation_history[-1].content if state.conversation_history else ""
        questions = await asyncio.gather(
            *(
                self.orchestrator.generate_next_question(agent, last_message, state.session_id)
                for agent in active
            )
        )
        return "\n\n".join(
            self.echo.generate_clarification_prompt(agent.type, question)
            for agent, question in zip(active, questions)
        ).strip()

    def _clarification_response(self, state: MetaLoopState, analysis: AmbiguityAnalysis) -> str:
        signals = analysis.signals
        response = "🔍 **I notice some ambiguity in your request.**\n\n"
        if signals.hedging_language:
            quoted = '", "'.join(signals.hedging_language)
            response += f'I detected some uncertainty: "{quoted}"\n'
        if signals.vague_terms:
            quoted = '", "'.join(signals.vague_terms)
            response += f'Some terms need clarification: "{quoted}"\n'
        response += f"\n{analysis.reasoning}\n\n"
        response += "Let me ask a few questions to help clarify:\n\n"
        response += "\n\n".join(
            self.echo.generate_clarification_prompt(agent.type, agent.current_question)
            for agent in state.active_sub_agents
            if agent.current_question
        )
        return response

    def _ready_reply(self, state: MetaLoopState, message: str) -> LoopResult:
        echo = state.current_goal_echo
        if echo is None:
            latest = state.latest_snapshot
            intent = latest.extracted_intent if latest else ExtractedIntent()
            confidence = latest.confidence if latest else INITIAL_CONFIDENCE
            echo = self.echo.generate_echo(intent, confidence, state.current_ambiguity_score)
            state.current_goal_echo = echo
        return self._reply(state, f"{echo.formatted_display}\n\n{message}", needs_clarification=False)

    @staticmethod
    def _reply(state: MetaLoopState, response: str, needs_clarification: bool) -> LoopResult:
        state.add_turn(Role.ASSISTANT, response)
        return LoopResult(state=state, response=response, needs_clarification=needs_clarification)

    # =========================================================================
    # Session cache
    # =========================================================================

    async def _load_state(self, session_id: str) -> MetaLoopState | None:
        state = self._sessions.get(session_id)
        if state is not None:
            return state

        try:
            snapshots = await self.snapshots.get_session_snapshots(session_id)
        except StorageError as e:
            logger.warning("Could not load history for session %s: %s", session_id, e)
            return None
        if not snapshots:
            return None

        state = self._rebuild_state(session_id, snapshots)
        self._sessions[session_id] = state
        logger.info("Session %s rebuilt from %d snapshots", session_id, len(snapshots))
        return state

    def _rebuild_state(self, session_id: str, snapshots: list[IntentSnapshot]) -> MetaLoopState:
        latest = snapshots[-1]
        status = latest.status
        if status is None:
            # history written before snapshots carried a status
            status = (
                SessionStatus.READY
                if latest.ambiguity_score <= self.config.clarify_threshold
                else SessionStatus.CLARIFYING
            )
        return MetaLoopState(
            session_id=session_id,
            iteration=len(snapshots),
            current_ambiguity_score=latest.ambiguity_score,
            previous_ambiguity_score=snapshots[-2].ambiguity_score if len(snapshots) > 1 else None,
            intent_snapshots=list(snapshots),
            current_goal_echo=self.echo.generate_echo(
                latest.extracted_intent, latest.confidence, latest.ambiguity_score
            ),
            status=status,
            rounds=len(snapshots) - 1,
        )


def _require_text(text: str) -> None:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Input text must not be empty", field="text")


__all__ = [
    "ERROR_MESSAGE",
    "MetaLoopEngine",
    "READY_MESSAGE",
    "ROUND_CAP_MESSAGE",
    "SKIP_FINDING",
    "SKIP_MESSAGE",
    "intent_from_analysis",
]
