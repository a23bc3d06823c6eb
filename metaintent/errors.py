"""
Error taxonomy for the MetaIntent engine.

Every error carries a machine code, an HTTP-style status and a
``retryable`` flag. Retryable backend errors are routed through the
fallback cascade instead of surfacing to callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import FallbackResponse


class MetaIntentError(Exception):
    """Base class for all engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "METAINTENT_ERROR",
        status_code: int = 500,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.retryable = retryable

    def to_dict(self) -> dict[str, object]:
        return {
            "error": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "retryable": self.retryable,
        }


class LLMTimeoutError(MetaIntentError):
    def __init__(self, message: str = "LLM request timed out"):
        super().__init__(message, "LLM_TIMEOUT", 504, retryable=True)


class LLMRateLimitError(MetaIntentError):
    def __init__(self, message: str = "LLM rate limit exceeded"):
        super().__init__(message, "LLM_RATE_LIMIT", 429, retryable=True)


class LLMServiceUnavailableError(MetaIntentError):
    def __init__(self, message: str = "LLM service unavailable"):
        super().__init__(message, "LLM_SERVICE_UNAVAILABLE", 503, retryable=True)


class BackendError(MetaIntentError):
    """Provider failure that fits none of the retryable categories."""

    def __init__(self, message: str, backend: str = "unknown"):
        super().__init__(message, "BACKEND_ERROR", 502, retryable=False)
        self.backend = backend


class ValidationError(MetaIntentError):
    """Malformed caller input. Never retried."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, "VALIDATION_ERROR", 400, retryable=False)
        self.field = field


class SessionNotFoundError(MetaIntentError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", "SESSION_NOT_FOUND", 404)
        self.session_id = session_id


class StorageError(MetaIntentError):
    def __init__(self, message: str):
        super().__init__(message, "STORAGE_ERROR", 500, retryable=True)


class CacheError(MetaIntentError):
    def __init__(self, message: str):
        super().__init__(message, "CACHE_ERROR", 500, retryable=False)


class FallbackExhaustedError(MetaIntentError):
    """
    The cascade produced no backend content (static or manual tier).

    Callers with a deterministic path of their own take it; the
    ``fallback`` attribute holds what the cascade returned.
    """

    def __init__(self, fallback: FallbackResponse):
        super().__init__(
            f"Fallback cascade ended at tier '{fallback.strategy.value}'",
            "FALLBACK_EXHAUSTED",
            503,
            retryable=False,
        )
        self.fallback = fallback


def should_trigger_fallback(error: BaseException) -> bool:
    """True for errors the fallback cascade is meant to absorb."""
    return isinstance(error, (LLMTimeoutError, LLMRateLimitError, LLMServiceUnavailableError))


__all__ = [
    "BackendError",
    "CacheError",
    "FallbackExhaustedError",
    "LLMRateLimitError",
    "LLMServiceUnavailableError",
    "LLMTimeoutError",
    "MetaIntentError",
    "SessionNotFoundError",
    "StorageError",
    "ValidationError",
    "should_trigger_fallback",
]
