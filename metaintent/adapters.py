"""
Text-generation backend adapters.

Every backend exposes the same call shape (``invoke``,
``invoke_with_retry``, ``estimate_cost``); provider-specific request
building, response parsing and error translation stay inside each
adapter. ``AdapterFactory`` maps a backend identifier to a shared
adapter instance.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any

import anthropic
import httpx

from .config import BackendConfig, parse_backend
from .errors import (
    BackendError,
    LLMRateLimitError,
    LLMServiceUnavailableError,
    LLMTimeoutError,
    MetaIntentError,
    ValidationError,
)
from .retry import retry_with_backoff
from .types import LLMBackend, LLMConfig, LLMResponse, RetryConfig, TokenUsage

logger = logging.getLogger(__name__)

# Rough USD rates per 1K tokens, used only for pre-call estimates
LLM_COSTS: dict[LLMBackend, tuple[float, float]] = {
    LLMBackend.CLAUDE: (0.003, 0.015),
    LLMBackend.NIM: (0.002, 0.010),
}


def estimate_tokens(text: str) -> int:
    """Approximate token count at ~4 characters per token."""
    return math.ceil(len(text) / 4)


class LLMAdapter(ABC):
    """Uniform contract for a text-generation backend."""

    backend: LLMBackend

    @abstractmethod
    async def invoke(self, prompt: str, config: LLMConfig) -> LLMResponse:
        """
        Generate a completion for ``prompt``.

        Raises:
            LLMTimeoutError, LLMRateLimitError, LLMServiceUnavailableError:
                retryable provider failures
            BackendError: any other provider failure
        """

    async def invoke_with_retry(
        self,
        prompt: str,
        config: LLMConfig,
        retries: int = 3,
        retry_config: RetryConfig | None = None,
    ) -> LLMResponse:
        """Invoke with exponential backoff; non-retryable errors fail fast."""
        base = retry_config or RetryConfig()
        settings = RetryConfig(
            max_attempts=retries,
            initial_delay=base.initial_delay,
            max_delay=base.max_delay,
            backoff_multiplier=base.backoff_multiplier,
        )
        return await retry_with_backoff(lambda: self.invoke(prompt, config), settings)

    def estimate_cost(self, prompt: str, config: LLMConfig) -> float:
        input_rate, output_rate = LLM_COSTS[self.backend]
        input_tokens = estimate_tokens(prompt)
        return (input_tokens / 1000) * input_rate + (config.max_tokens / 1000) * output_rate

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""


class ClaudeAdapter(LLMAdapter):
    """Claude via the Anthropic Messages API."""

    backend = LLMBackend.CLAUDE

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise LLMServiceUnavailableError("Anthropic API key is not configured")
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)
        return self._client

    async def invoke(self, prompt: str, config: LLMConfig) -> LLMResponse:
        request_params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if config.system_prompt:
            request_params["system"] = config.system_prompt
        if config.stop_sequences:
            request_params["stop_sequences"] = config.stop_sequences

        client = self._get_client()
        try:
            response = await client.messages.create(**request_params)
        except Exception as e:
            raise self._translate_error(e) from e

        content = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(
            content=content,
            usage=TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            metadata={"model": self.model, "stop_reason": response.stop_reason},
        )

    def _translate_error(self, error: Exception) -> MetaIntentError:
        message = str(error) or "Unknown Claude error"
        if isinstance(error, anthropic.APITimeoutError):
            return LLMTimeoutError(message)
        if isinstance(error, anthropic.RateLimitError):
            return LLMRateLimitError(message)
        if isinstance(error, anthropic.APIConnectionError):
            return LLMServiceUnavailableError(message)
        if isinstance(error, anthropic.APIStatusError) and error.status_code in (500, 502, 503, 529):
            return LLMServiceUnavailableError(message)
        return BackendError(f"Claude error: {message}", backend=self.backend.value)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


class NIMAdapter(LLMAdapter):
    """NVIDIA NIM through its OpenAI-compatible chat completions endpoint."""

    backend = LLMBackend.NIM

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def invoke(self, prompt: str, config: LLMConfig) -> LLMResponse:
        messages = []
        if config.system_prompt:
            messages.append({"role": "system", "content": config.system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }
        if config.stop_sequences:
            payload["stop"] = config.stop_sequences

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = await self._get_client().post(
                f"{self.base_url}/chat/completions", json=payload, headers=headers
            )
            response.raise_for_status()
            data = response.json()
        except Exception as e:
            raise self._translate_error(e) from e

        choices = data.get("choices") or []
        if not choices:
            raise BackendError("Empty response from NIM endpoint", backend=self.backend.value)
        content = (choices[0].get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}

        return LLMResponse(
            content=content,
            usage=TokenUsage(
                input_tokens=usage.get("prompt_tokens") or estimate_tokens(prompt),
                output_tokens=usage.get("completion_tokens") or estimate_tokens(content),
            ),
            metadata={"model": data.get("model", self.model), "endpoint": self.base_url},
        )

    def _translate_error(self, error: Exception) -> MetaIntentError:
        message = str(error) or "Unknown NIM error"
        if isinstance(error, httpx.TimeoutException):
            return LLMTimeoutError(message)
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            if status == 429:
                return LLMRateLimitError(message)
            if status in (502, 503, 504):
                return LLMServiceUnavailableError(message)
        if isinstance(error, httpx.TransportError):
            return LLMServiceUnavailableError(message)
        return BackendError(f"NIM error: {message}", backend=self.backend.value)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


class AdapterFactory:
    """
    Lazily builds one adapter per backend from configuration.

    ``register`` installs a ready-made adapter, which is how tests and
    embedders inject fakes.
    """

    def __init__(self, config: BackendConfig | None = None):
        self.config = config or BackendConfig()
        self._instances: dict[LLMBackend, LLMAdapter] = {}

    @property
    def primary_backend(self) -> LLMBackend:
        return self.config.primary_backend

    @property
    def fallback_backend(self) -> LLMBackend:
        return self.config.fallback_backend

    def register(self, backend: LLMBackend | str, adapter: LLMAdapter) -> None:
        self._instances[parse_backend(backend)] = adapter

    def get_adapter(self, backend: LLMBackend | str) -> LLMAdapter:
        """Get the adapter instance for ``backend``."""
        resolved = parse_backend(backend)
        if resolved not in self._instances:
            self._instances[resolved] = self._build(resolved)
        return self._instances[resolved]

    def get_primary_adapter(self) -> LLMAdapter:
        return self.get_adapter(self.primary_backend)

    def get_fallback_adapter(self) -> LLMAdapter:
        return self.get_adapter(self.fallback_backend)

    def alternative_to(self, attempted: list[LLMBackend]) -> LLMBackend | None:
        """First configured backend not yet attempted, if any."""
        for candidate in (self.primary_backend, self.fallback_backend, *LLMBackend):
            if candidate not in attempted:
                return candidate
        return None

    def _build(self, backend: LLMBackend) -> LLMAdapter:
        if backend == LLMBackend.CLAUDE:
            return ClaudeAdapter(
                model=self.config.claude_model,
                api_key=self.config.anthropic_api_key,
                timeout=self.config.request_timeout,
            )
        if backend == LLMBackend.NIM:
            return NIMAdapter(
                base_url=self.config.nim_base_url,
                model=self.config.nim_model,
                api_key=self.config.nim_api_key,
                timeout=self.config.request_timeout,
            )
        raise ValidationError(f"Unknown LLM backend: {backend}", field="backend")

    def reset(self) -> None:
        """Forget all adapter instances."""
        self._instances.clear()

    async def aclose(self) -> None:
        for adapter in self._instances.values():
            await adapter.aclose()


__all__ = [
    "AdapterFactory",
    "ClaudeAdapter",
    "LLMAdapter",
    "LLM_COSTS",
    "NIMAdapter",
    "estimate_tokens",
]
