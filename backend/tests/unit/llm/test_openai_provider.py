"""Unit tests for OpenAI provider.

Tests cover:
- Request building and response parsing
- Error handling and mapping
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError, APIStatusError, APITimeoutError

from src.llm.errors import (
    AuthenticationError,
    ContentFilterError,
    InvalidRequestError,
    ProviderError,
    RateLimitError,
    TimeoutError,
)
from src.llm.models import ChatMessage, LLMRequest
from src.llm.providers.openai import OpenAIProvider

VALID_KEY = "sk-openai-test-key-0123456789"


def make_status_error(status_code: int, message: str, headers: dict | None = None) -> APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status_code, headers=headers or {}, request=request)
    return APIStatusError(message, response=response, body=None)


def make_response(content: str | None = "Hello!", finish_reason: str = "stop", with_usage: bool = True) -> MagicMock:
    choice = MagicMock()
    choice.message.content = content
    choice.finish_reason = finish_reason

    response = MagicMock()
    response.id = "chatcmpl-123"
    response.model = "gpt-4o"
    response.choices = [choice]
    if with_usage:
        response.usage.prompt_tokens = 10
        response.usage.completion_tokens = 5
        response.usage.total_tokens = 15
    else:
        response.usage = None
    return response


def make_request(**kwargs) -> LLMRequest:
    return LLMRequest(
        messages=[
            ChatMessage(role="system", content="Be brief."),
            ChatMessage(role="user", content="Hi"),
        ],
        **kwargs,
    )


class TestOpenAIProviderInit:
    """Tests for OpenAI provider initialization."""

    def test_provider_name(self):
        assert OpenAIProvider(api_key=VALID_KEY).name == "openai"

    def test_default_model(self, monkeypatch):
        monkeypatch.delenv("FALLBACK_MODEL", raising=False)
        assert OpenAIProvider(api_key=VALID_KEY)._default_model == "gpt-4o"

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", VALID_KEY)
        assert OpenAIProvider().is_configured() is True

    def test_placeholder_key_not_configured(self):
        assert OpenAIProvider(api_key="sk-xxxx").is_configured() is False


class TestOpenAIRequestBuilding:
    """Tests for request payload construction."""

    def test_messages_passed_in_order(self):
        payload = OpenAIProvider(api_key=VALID_KEY)._build_request(make_request(max_tokens=64))

        assert payload["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ]
        assert payload["max_tokens"] == 64
        assert payload["temperature"] == 0.7

    def test_max_tokens_omitted_when_unset(self):
        payload = OpenAIProvider(api_key=VALID_KEY)._build_request(make_request())
        assert "max_tokens" not in payload


class TestOpenAIResponseParsing:
    """Tests for response conversion."""

    def test_parse_text_response(self):
        response = OpenAIProvider(api_key=VALID_KEY)._parse_response(make_response(), latency_ms=42)

        assert response.text == "Hello!"
        assert response.provider == "openai"
        assert response.usage.total_tokens == 15
        assert response.request_id == "chatcmpl-123"

    def test_missing_usage_defaults_to_zero(self):
        response = OpenAIProvider(api_key=VALID_KEY)._parse_response(
            make_response(with_usage=False), latency_ms=1
        )
        assert response.usage.total_tokens == 0

    def test_null_content_kept_as_none(self):
        response = OpenAIProvider(api_key=VALID_KEY)._parse_response(make_response(content=None), latency_ms=1)
        assert response.text is None


class TestOpenAIProviderGenerate:
    """Tests for OpenAI provider generate method."""

    async def _generate_with_error(self, error: Exception):
        provider = OpenAIProvider(api_key=VALID_KEY)
        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(side_effect=error)
        with patch.object(provider, "_client", mock_client):
            return await provider.generate(make_request())

    @pytest.mark.asyncio
    async def test_generate_success(self):
        provider = OpenAIProvider(api_key=VALID_KEY)
        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=make_response("Fallback text"))

        with patch.object(provider, "_client", mock_client):
            response = await provider.generate(make_request())

        assert response.text == "Fallback text"
        assert mock_client.chat.completions.create.call_args.kwargs["model"] == provider._default_model

    @pytest.mark.asyncio
    async def test_generate_timeout(self):
        with pytest.raises(TimeoutError):
            await self._generate_with_error(APITimeoutError(request=MagicMock()))

    @pytest.mark.asyncio
    async def test_generate_connection_error(self):
        with pytest.raises(ProviderError):
            await self._generate_with_error(APIConnectionError(request=MagicMock()))

    @pytest.mark.asyncio
    async def test_auth_error(self):
        error = make_status_error(401, "Incorrect API key provided")
        with pytest.raises(AuthenticationError) as exc_info:
            await self._generate_with_error(error)
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        error = make_status_error(429, "Too many requests", headers={"retry-after": "2"})
        with pytest.raises(RateLimitError) as exc_info:
            await self._generate_with_error(error)
        assert exc_info.value.retry_after == 2.0

    @pytest.mark.asyncio
    async def test_content_filter(self):
        with pytest.raises(ContentFilterError):
            await self._generate_with_error(make_status_error(400, "Rejected by content_filter"))

    @pytest.mark.asyncio
    async def test_invalid_request(self):
        with pytest.raises(InvalidRequestError):
            await self._generate_with_error(make_status_error(400, "Unknown parameter"))

    @pytest.mark.asyncio
    async def test_server_error(self):
        with pytest.raises(ProviderError):
            await self._generate_with_error(make_status_error(503, "Service unavailable"))
