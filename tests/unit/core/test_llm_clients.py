"""Tests for the OpenRouter client, retry handling and the unified client."""

import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from takeoff_ai.core.config import LLMSettings
from takeoff_ai.core.exceptions import APIClientError, ConfigurationError
from takeoff_ai.core.llm_client import BaseLLMClient, OpenRouterClient
from takeoff_ai.core.unified_llm import UnifiedLLMClient, create_llm_client_from_settings
from takeoff_ai.schemas.llm import CompletionRequest, CompletionResult

API_URL = "https://openrouter.example.com/api/v1/chat/completions"

_RealAsyncClient = httpx.AsyncClient


def client_factory(handler):
    transport = httpx.MockTransport(handler)

    def build(**kwargs):
        return _RealAsyncClient(transport=transport, **kwargs)

    return build


@pytest.fixture
def completion_request() -> CompletionRequest:
    return CompletionRequest(
        system_prompt="You are a construction estimator.",
        user_prompt="Analyze pages 1-5 for structural work (foundation).",
        images=["https://img.example.com/page-1.png"],
        max_tokens=1024,
        temperature=0.2,
    )


class TestBaseLLMClient:

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, text="invalid model")

        client = BaseLLMClient(api_key="key", base_url=API_URL, max_retries=3)
        with patch("takeoff_ai.core.llm_client.httpx.AsyncClient", client_factory(handler)):
            with pytest.raises(APIClientError, match="400"):
                await client.call_api(payload={})

        assert len(calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 503])
    async def test_retryable_status_is_retried(self, status_code):
        responses = [httpx.Response(status_code), httpx.Response(200, json={"ok": True})]

        client = BaseLLMClient(api_key="key", base_url=API_URL, max_retries=3)
        client._wait_before_retry = AsyncMock()
        with patch("takeoff_ai.core.llm_client.httpx.AsyncClient", client_factory(lambda request: responses.pop(0))):
            result = await client.call_api(payload={})

        assert result == {"ok": True}
        client._wait_before_retry.assert_awaited_once_with(0)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        client = BaseLLMClient(api_key="key", base_url=API_URL, max_retries=2)
        client._wait_before_retry = AsyncMock()

        with patch(
            "takeoff_ai.core.llm_client.httpx.AsyncClient",
            client_factory(lambda request: httpx.Response(500)),
        ):
            with pytest.raises(APIClientError, match="after retries"):
                await client.call_api(payload={})


class TestOpenRouterClient:

    def test_payload_carries_images_as_parts(self, completion_request):
        client = OpenRouterClient(api_key="key", model="google/gemini-2.0-flash-001", base_url=API_URL)

        payload = client.build_payload(completion_request)

        assert payload["model"] == "google/gemini-2.0-flash-001"
        assert payload["messages"][0] == {"role": "system", "content": "You are a construction estimator."}
        user_content = payload["messages"][1]["content"]
        assert user_content[0]["type"] == "text"
        assert user_content[1] == {"type": "image_url", "image_url": {"url": "https://img.example.com/page-1.png"}}
        assert payload["max_tokens"] == 1024

    @pytest.mark.asyncio
    async def test_complete_parses_choice_and_usage(self, completion_request):
        def handler(request):
            body = json.loads(request.content)
            assert request.headers["Authorization"] == "Bearer key"
            assert body["temperature"] == 0.2
            return httpx.Response(
                200,
                json={
                    "choices": [{"message": {"content": '{"items": []}'}}],
                    "usage": {"prompt_tokens": 1200, "completion_tokens": 40, "total_tokens": 1240},
                },
            )

        client = OpenRouterClient(api_key="key", model="test-model", base_url=API_URL)
        with patch("takeoff_ai.core.llm_client.httpx.AsyncClient", client_factory(handler)):
            result = await client.complete(completion_request)

        assert result.content == '{"items": []}'
        assert result.usage == {"prompt_tokens": 1200, "completion_tokens": 40, "total_tokens": 1240}
        assert result.provider == "openrouter"

    @pytest.mark.asyncio
    async def test_missing_choices_raise(self, completion_request):
        client = OpenRouterClient(api_key="key", model="test-model", base_url=API_URL)

        with patch(
            "takeoff_ai.core.llm_client.httpx.AsyncClient",
            client_factory(lambda request: httpx.Response(200, json={"error": "overloaded"})),
        ):
            with pytest.raises(APIClientError, match="Invalid response format"):
                await client.complete(completion_request)


class TestUnifiedLLMClient:

    @pytest.mark.asyncio
    async def test_falls_back_when_primary_fails(self, completion_request):
        client = UnifiedLLMClient(provider="openrouter", api_key="key", model="test-model")
        client.client = Mock(complete=AsyncMock(side_effect=APIClientError("API HTTP Error 503 after retries")))
        fallback_result = CompletionResult(content="{}", provider="gemini", model="gemini-2.0-flash")
        client.fallback_client = Mock(complete=AsyncMock(return_value=fallback_result))

        result = await client.complete(completion_request)

        assert result is fallback_result

    @pytest.mark.asyncio
    async def test_without_fallback_error_propagates(self, completion_request):
        client = UnifiedLLMClient(provider="openrouter", api_key="key", model="test-model")
        client.client = Mock(complete=AsyncMock(side_effect=APIClientError("boom")))

        with pytest.raises(APIClientError, match="boom"):
            await client.complete(completion_request)

    @pytest.mark.asyncio
    async def test_both_providers_failing(self, completion_request):
        client = UnifiedLLMClient(provider="openrouter", api_key="key", model="test-model")
        client.client = Mock(complete=AsyncMock(side_effect=APIClientError("primary down")))
        client.fallback_client = Mock(complete=AsyncMock(side_effect=APIClientError("fallback down")))

        with pytest.raises(APIClientError, match="Both primary"):
            await client.complete(completion_request)


class TestClientFactory:

    def test_missing_openrouter_key(self):
        with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
            create_llm_client_from_settings(LLMSettings(LLM_PROVIDER="openrouter", OPENROUTER_API_KEY=""))

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Unsupported LLM provider"):
            create_llm_client_from_settings(LLMSettings(LLM_PROVIDER="carrier-pigeon"))

    def test_openrouter_client_from_settings(self):
        client = create_llm_client_from_settings(
            LLMSettings(LLM_PROVIDER="OpenRouter", OPENROUTER_API_KEY=" key ", OPENROUTER_MODEL="test-model")
        )

        assert client.provider.value == "openrouter"
        assert client.client.api_key == "key"
        assert client.fallback_client is None
