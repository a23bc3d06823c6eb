"""
MetaIntent: clarify what a user wants before building an agent for it.
"""

from .ambiguity import AmbiguityDetector
from .config import MetaIntentConfig
from .errors import (
    MetaIntentError,
    SessionNotFoundError,
    ValidationError,
)
from .fallback import FallbackHandler
from .gateway import ReasoningGateway
from .generator import AgentGenerator
from .goal_echo import GoalEchoGenerator
from .metaloop import MetaLoopEngine
from .orchestrator import SubAgentOrchestrator
from .replay import SessionReplay, build_replay
from .snapshots import IntentSnapshotManager
from .types import (
    AmbiguityAnalysis,
    ExtractedIntent,
    IntentSnapshot,
    LoopResult,
    MetaLoopState,
    SessionStatus,
)

__version__ = "0.1.0"

__all__ = [
    "AgentGenerator",
    "AmbiguityAnalysis",
    "AmbiguityDetector",
    "ExtractedIntent",
    "FallbackHandler",
    "GoalEchoGenerator",
    "IntentSnapshot",
    "IntentSnapshotManager",
    "LoopResult",
    "MetaIntentConfig",
    "MetaIntentError",
    "MetaLoopEngine",
    "MetaLoopState",
    "ReasoningGateway",
    "SessionNotFoundError",
    "SessionReplay",
    "SessionStatus",
    "SubAgentOrchestrator",
    "ValidationError",
    "build_replay",
]
