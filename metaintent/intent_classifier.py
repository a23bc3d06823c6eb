"""
Classifier for replies that carry no clarifying information.

Shared by the loop engine (whole-session skip) and the orchestrator
(per-agent no-info). The no-info set is a superset of the skip set:
a terse "no" or "nothing" ends one agent's line of questioning but is
not a request to abandon clarification altogether.

Multi-word phrases match as substrings. Single words match on word
boundaries so "know", "notes" or "nonetheless" never count as "no",
"none" and friends.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Final

logger = logging.getLogger(__name__)

SKIP_PHRASES: Final[tuple[str, ...]] = (
    "skip",
    "i don't know",
    "don't know",
    "dont know",
    "not sure",
    "no idea",
    "idk",
    "dunno",
)

NO_INFO_PHRASES: Final[tuple[str, ...]] = SKIP_PHRASES + (
    "no",
    "nothing",
    "none",
)


def _compile(phrases: tuple[str, ...]) -> re.Pattern[str]:
    parts = []
    for phrase in phrases:
        escaped = re.escape(phrase)
        parts.append(escaped if " " in phrase else rf"\b{escaped}\b")
    return re.compile("|".join(parts))


_SKIP_PATTERN: Final[re.Pattern[str]] = _compile(SKIP_PHRASES)
_NO_INFO_PATTERN: Final[re.Pattern[str]] = _compile(NO_INFO_PHRASES)


class ReplyKind(str, Enum):
    """How a user reply should be treated by the clarification loop."""

    SKIP = "skip"  # abandon clarification, proceed with what we have
    NO_INFO = "no_info"  # nothing to add for this question
    ANSWER = "answer"


def _normalize(text: str) -> str:
    return text.lower().replace("’", "'").strip()


def is_skip_request(text: str) -> bool:
    """True when the user asks to stop clarifying."""
    return bool(_SKIP_PATTERN.search(_normalize(text)))


def is_no_info(text: str) -> bool:
    """True when the reply offers nothing an agent could record."""
    return bool(_NO_INFO_PATTERN.search(_normalize(text)))


def classify_reply(text: str) -> ReplyKind:
    if is_skip_request(text):
        kind = ReplyKind.SKIP
    elif is_no_info(text):
        kind = ReplyKind.NO_INFO
    else:
        kind = ReplyKind.ANSWER
    logger.debug("Reply classified as %s", kind.value)
    return kind


__all__ = [
    "NO_INFO_PHRASES",
    "ReplyKind",
    "SKIP_PHRASES",
    "classify_reply",
    "is_no_info",
    "is_skip_request",
]
