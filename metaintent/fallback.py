"""
Tiered recovery for failed backend calls.

Tiers run in strict order until one yields a response:

1. an alternative backend not yet attempted for this request
2. a cached response for the same request
3. a canned response chosen by the request's declared type
4. a manual-input response asking the user to retry

Each tier's failure is logged and swallowed, so ``handle`` never raises.
"""

from __future__ import annotations

import logging
from typing import Any

from .adapters import AdapterFactory
from .cache import CacheManager
from .logger import StructuredLogger
from .types import (
    BackendRequest,
    FallbackRequest,
    FallbackResponse,
    FallbackStrategy,
    LLMBackend,
    LLMResponse,
)

logger = logging.getLogger(__name__)

COMPONENT = "FallbackHandler"

STATIC_RESPONSES: dict[str, dict[str, Any]] = {
    "identity_verification": {
        "intent": "verify_identity",
        "confidence": 0.8,
        "next_action": "Please provide your full name, date of birth, and document ID",
    },
    "clarification": {
        "intent": "clarify",
        "confidence": 0.9,
        "next_action": "Could you please provide more information?",
    },
}

# (keywords in the request type, static response key)
_STATIC_ROUTES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("identity", "verify"), "identity_verification"),
    (("clarify", "intent"), "clarification"),
)

MANUAL_INPUT_MESSAGE = (
    "We are experiencing technical difficulties. "
    "Please try again or provide more information."
)


class FallbackHandler:
    """Runs the fallback cascade for one failed request."""

    def __init__(
        self,
        factory: AdapterFactory,
        cache: CacheManager | None = None,
        structured_logger: StructuredLogger | None = None,
    ):
        self.factory = factory
        self.cache = cache or CacheManager()
        self.log = structured_logger or StructuredLogger()

    async def handle(self, request: FallbackRequest) -> FallbackResponse:
        """
        Recover from a failed backend call.

        Args:
            request: The failed request, failure reason and the backends
                already attempted

        Returns:
            A response from the first tier that succeeds; the manual tier
            (``requires_user_input=True``) when all others fail
        """
        await self.log.warn(
            request.session_id,
            COMPONENT,
            f"Fallback triggered: {request.failure_reason}",
            {"attempted_backends": [b.value for b in request.attempted_backends]},
        )

        alternative = self.factory.alternative_to(request.attempted_backends)
        if alternative is not None:
            try:
                response = await self._try_alternative_backend(request, alternative)
                return FallbackResponse(FallbackStrategy.ALTERNATIVE_BACKEND, response)
            except Exception as e:
                await self.log.warn(
                    request.session_id,
                    COMPONENT,
                    "Alternative backend failed",
                    {"backend": alternative.value, "error": str(e)},
                )

        try:
            cached = await self._try_cache(request)
            if cached is not None:
                return FallbackResponse(FallbackStrategy.CACHE, cached)
        except Exception as e:
            await self.log.warn(
                request.session_id, COMPONENT, "Cache lookup failed", {"error": str(e)}
            )

        static = self.get_static_response(request.original_request)
        if static is not None:
            return FallbackResponse(FallbackStrategy.STATIC_FLOW, static)

        await self.log.error(request.session_id, COMPONENT, "All fallback tiers exhausted")
        return FallbackResponse(
            FallbackStrategy.MANUAL,
            {"message": MANUAL_INPUT_MESSAGE},
            requires_user_input=True,
        )

    async def _try_alternative_backend(
        self, request: FallbackRequest, backend: LLMBackend
    ) -> LLMResponse:
        adapter = self.factory.get_adapter(backend)
        original = request.original_request
        await self.log.info(
            request.session_id, COMPONENT, f"Trying alternative backend: {backend.value}"
        )
        response = await adapter.invoke(original.prompt, original.config)
        request.attempted_backends.append(backend)
        return response

    async def _try_cache(self, request: FallbackRequest) -> Any | None:
        cache_key = self.cache.generate_cache_key(request.original_request)
        await self.log.info(request.session_id, COMPONENT, "Checking cache for similar request")

        entry = await self.cache.get(cache_key)
        if entry is None:
            return None

        await self.log.info(
            request.session_id,
            COMPONENT,
            "Cache hit - using cached response",
            {"hit_count": entry.hit_count, "backend": entry.llm_backend},
        )
        return entry.response

    @staticmethod
    def get_static_response(request: BackendRequest) -> dict[str, Any] | None:
        """Canned response matched on keywords in the request type."""
        request_type = (request.type or "").lower()
        for keywords, key in _STATIC_ROUTES:
            if any(word in request_type for word in keywords):
                return dict(STATIC_RESPONSES[key])
        return None

    @staticmethod
    def create_fallback_request(
        original_request: BackendRequest,
        error: BaseException,
        attempted_backends: list[LLMBackend],
        session_id: str,
    ) -> FallbackRequest:
        return FallbackRequest(
            original_request=original_request,
            failure_reason=str(error) or type(error).__name__,
            attempted_backends=list(attempted_backends),
            session_id=session_id,
        )


__all__ = ["FallbackHandler", "MANUAL_INPUT_MESSAGE", "STATIC_RESPONSES"]
