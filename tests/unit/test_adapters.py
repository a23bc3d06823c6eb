"""
Unit tests for backend adapters and the adapter factory.

NIM calls go through an httpx MockTransport; the Anthropic client is
replaced with a stand-in exposing ``messages.create``.
"""

import json
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from metaintent.adapters import (
    AdapterFactory,
    ClaudeAdapter,
    NIMAdapter,
    estimate_tokens,
)
from metaintent.config import BackendConfig
from metaintent.errors import (
    BackendError,
    LLMRateLimitError,
    LLMServiceUnavailableError,
    LLMTimeoutError,
    ValidationError,
)
from metaintent.types import LLMBackend, LLMConfig


def _nim(handler, api_key="nim-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NIMAdapter("http://nim.test/v1/", "meta/llama", api_key=api_key, client=client)


class FakeMessages:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.params = None

    async def create(self, **params):
        self.params = params
        if self.error is not None:
            raise self.error
        return self.response


def _claude_response(*blocks):
    return SimpleNamespace(
        content=list(blocks),
        usage=SimpleNamespace(input_tokens=12, output_tokens=3),
        stop_reason="end_turn",
    )


class TestNIMAdapter:
    @pytest.mark.asyncio
    async def test_chat_completion(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "model": "meta/llama",
                    "choices": [{"message": {"content": "Who is it for?"}}],
                    "usage": {"prompt_tokens": 7, "completion_tokens": 4},
                },
            )

        adapter = _nim(handler)
        config = LLMConfig(max_tokens=150, temperature=0.7, system_prompt="Be brief")

        response = await adapter.invoke("Ask a question", config)

        assert response.content == "Who is it for?"
        assert response.usage.input_tokens == 7
        assert response.usage.output_tokens == 4
        assert seen["url"] == "http://nim.test/v1/chat/completions"
        assert seen["auth"] == "Bearer nim-key"
        assert seen["body"]["max_tokens"] == 150
        assert seen["body"]["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Ask a question"},
        ]
        await adapter.aclose()

    @pytest.mark.asyncio
    async def test_usage_estimated_when_missing(self):
        adapter = _nim(
            lambda request: httpx.Response(200, json={"choices": [{"message": {"content": "abcdefgh"}}]}),
            api_key=None,
        )
        response = await adapter.invoke("abcd", LLMConfig())
        assert response.usage.input_tokens == 1
        assert response.usage.output_tokens == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error",
        [
            (429, LLMRateLimitError),
            (502, LLMServiceUnavailableError),
            (503, LLMServiceUnavailableError),
            (504, LLMServiceUnavailableError),
            (400, BackendError),
            (500, BackendError),
        ],
    )
    async def test_status_translation(self, status, error):
        adapter = _nim(lambda request: httpx.Response(status, json={"error": "x"}))
        with pytest.raises(error):
            await adapter.invoke("p", LLMConfig())

    @pytest.mark.asyncio
    async def test_transport_failures(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        def stall(request):
            raise httpx.ReadTimeout("stalled", request=request)

        with pytest.raises(LLMServiceUnavailableError):
            await _nim(refuse).invoke("p", LLMConfig())
        with pytest.raises(LLMTimeoutError):
            await _nim(stall).invoke("p", LLMConfig())

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        adapter = _nim(lambda request: httpx.Response(200, json={"choices": []}))
        with pytest.raises(BackendError) as exc_info:
            await adapter.invoke("p", LLMConfig())
        assert exc_info.value.backend == "nim"


class TestClaudeAdapter:
    @pytest.mark.asyncio
    async def test_text_blocks_joined(self):
        messages = FakeMessages(
            _claude_response(
                SimpleNamespace(type="text", text="Who "),
                SimpleNamespace(type="tool_use", text="ignored"),
                SimpleNamespace(type="text", text="is it for?"),
            )
        )
        adapter = ClaudeAdapter("claude-test", client=SimpleNamespace(messages=messages))

        response = await adapter.invoke(
            "Ask", LLMConfig(max_tokens=150, temperature=0.7, system_prompt="sys", stop_sequences=["\n\n"])
        )

        assert response.content == "Who is it for?"
        assert response.usage.input_tokens == 12
        assert response.metadata == {"model": "claude-test", "stop_reason": "end_turn"}
        assert messages.params["system"] == "sys"
        assert messages.params["stop_sequences"] == ["\n\n"]
        assert messages.params["messages"] == [{"role": "user", "content": "Ask"}]

    @pytest.mark.asyncio
    async def test_missing_key_is_unavailable(self):
        with pytest.raises(LLMServiceUnavailableError):
            await ClaudeAdapter("claude-test").invoke("p", LLMConfig())

    @pytest.mark.asyncio
    async def test_error_translation(self):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        cases = [
            (anthropic.APITimeoutError(request=request), LLMTimeoutError),
            (anthropic.APIConnectionError(request=request), LLMServiceUnavailableError),
            (ValueError("odd"), BackendError),
        ]
        for raised, expected in cases:
            adapter = ClaudeAdapter(
                "claude-test", client=SimpleNamespace(messages=FakeMessages(error=raised))
            )
            with pytest.raises(expected):
                await adapter.invoke("p", LLMConfig())


class TestCostEstimates:
    def test_estimate_tokens_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcde") == 2

    def test_estimate_cost(self):
        adapter = ClaudeAdapter("claude-test")
        cost = adapter.estimate_cost("a" * 4000, LLMConfig(max_tokens=1000))
        assert cost == pytest.approx(1 * 0.003 + 1 * 0.015)


class TestAdapterFactory:
    def test_builds_and_reuses_adapters(self):
        factory = AdapterFactory(BackendConfig(nim_base_url="http://nim.test/v1"))

        claude = factory.get_adapter("claude")
        nim = factory.get_adapter(LLMBackend.NIM)

        assert isinstance(claude, ClaudeAdapter)
        assert isinstance(nim, NIMAdapter)
        assert nim.base_url == "http://nim.test/v1"
        assert factory.get_primary_adapter() is claude
        assert factory.get_fallback_adapter() is nim

    def test_alternative_to(self):
        factory = AdapterFactory(BackendConfig(primary="nim", fallback="claude"))
        assert factory.alternative_to([LLMBackend.NIM]) == LLMBackend.CLAUDE
        assert factory.alternative_to([]) == LLMBackend.NIM
        assert factory.alternative_to([LLMBackend.NIM, LLMBackend.CLAUDE]) is None

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            AdapterFactory().get_adapter("gpt")

    def test_register_and_reset(self):
        factory = AdapterFactory()
        fake = NIMAdapter("http://x", "m")
        factory.register("nim", fake)
        assert factory.get_adapter("nim") is fake

        factory.reset()
        assert factory.get_adapter("nim") is not fake
