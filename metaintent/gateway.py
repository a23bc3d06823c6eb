"""
Single call path from the engine's components to the reasoning backend.

The primary adapter is tried first. Retryable failures go through the
fallback cascade; successful responses are written through to the
cache so the cascade has something to serve during later outages.
Anything that does not yield backend text is raised, leaving callers
free to take their own deterministic path.
"""

from __future__ import annotations

import logging
import time

from .adapters import AdapterFactory
from .cache import CacheManager
from .errors import FallbackExhaustedError, should_trigger_fallback
from .fallback import FallbackHandler
from .logger import StructuredLogger
from .types import (
    BackendRequest,
    FallbackStrategy,
    LLMBackend,
    LLMResponse,
    LogLevel,
    RetryConfig,
)

logger = logging.getLogger(__name__)

COMPONENT = "ReasoningGateway"


class ReasoningGateway:
    """Backend access with fallback and response caching."""

    def __init__(
        self,
        factory: AdapterFactory,
        cache: CacheManager | None = None,
        structured_logger: StructuredLogger | None = None,
        fallback: FallbackHandler | None = None,
        retry_config: RetryConfig | None = None,
    ):
        """
        Args:
            retry_config: When set, the primary backend is retried with
                backoff before the cascade takes over
        """
        self.factory = factory
        self.retry_config = retry_config
        self.cache = cache or CacheManager()
        self.log = structured_logger or StructuredLogger()
        self.fallback = fallback or FallbackHandler(factory, self.cache, self.log)

    async def complete(self, request: BackendRequest, session_id: str = "system") -> LLMResponse:
        """
        Run ``request`` against the primary backend, falling back as needed.

        Raises:
            FallbackExhaustedError: the cascade ended on a static or manual tier
            MetaIntentError: a non-retryable backend or validation failure
        """
        backend = self.factory.primary_backend
        adapter = self.factory.get_adapter(backend)
        started = time.monotonic()

        try:
            if self.retry_config is not None and self.retry_config.max_attempts > 1:
                response = await adapter.invoke_with_retry(
                    request.prompt,
                    request.config,
                    retries=self.retry_config.max_attempts,
                    retry_config=self.retry_config,
                )
            else:
                response = await adapter.invoke(request.prompt, request.config)
        except Exception as error:
            if not should_trigger_fallback(error):
                logger.warning("%s request failed without fallback: %s", request.type, error)
                raise
            return await self._recover(request, error, backend, session_id)

        await self.log.log_with_metrics(
            LogLevel.INFO,
            session_id,
            COMPONENT,
            f"{request.type} completed on {backend.value}",
            cost=adapter.estimate_cost(request.prompt, request.config),
            duration=(time.monotonic() - started) * 1000,
        )
        await self._write_through(request, response, backend)
        return response

    async def _recover(
        self,
        request: BackendRequest,
        error: BaseException,
        backend: LLMBackend,
        session_id: str,
    ) -> LLMResponse:
        fallback_request = FallbackHandler.create_fallback_request(
            request, error, [backend], session_id
        )
        result = await self.fallback.handle(fallback_request)

        if result.strategy == FallbackStrategy.ALTERNATIVE_BACKEND and isinstance(
            result.response, LLMResponse
        ):
            await self._write_through(request, result.response, fallback_request.attempted_backends[-1])
            return result.response

        if result.strategy == FallbackStrategy.CACHE:
            cached = result.response
            if isinstance(cached, dict) and isinstance(cached.get("content"), str):
                return LLMResponse.from_dict(cached)
            if isinstance(cached, str):
                return LLMResponse(content=cached)

        raise FallbackExhaustedError(result)

    async def _write_through(
        self, request: BackendRequest, response: LLMResponse, backend: LLMBackend
    ) -> None:
        try:
            await self.cache.cache_response(request, response.to_dict(), backend)
        except Exception as e:
            logger.warning("Failed to cache %s response: %s", request.type, e)


__all__ = ["ReasoningGateway"]
