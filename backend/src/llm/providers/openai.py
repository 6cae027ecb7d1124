"""OpenAI provider implementation.

Implements the LLMProvider interface for OpenAI's Chat Completions API.
Used as the general-purpose fallback behind Anthropic.
"""

import os
import time
from typing import Any

from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError

from ..errors import AuthenticationError, ProviderError, TimeoutError
from ..models import LLMRequest, LLMResponse, Usage
from .base import LLMProvider, parse_retry_after, status_error_to_llm_error

DEFAULT_OPENAI_MODEL = "gpt-4o"


class OpenAIProvider(LLMProvider):
    """OpenAI Chat Completions API provider."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 300.0,
        default_model: str | None = None,
    ):
        """Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key. Defaults to OPENAI_API_KEY env var.
            timeout: Request timeout in seconds.
            default_model: Model used when the request leaves it empty.
                Defaults to FALLBACK_MODEL env var.
        """
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._timeout = timeout
        self._default_model = (
            default_model or os.environ.get("FALLBACK_MODEL") or DEFAULT_OPENAI_MODEL
        )
        self._client: AsyncOpenAI | None = None

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "openai"

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-initialized OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise AuthenticationError(
                    "OpenAI API key not configured. Set OPENAI_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request to OpenAI."""
        start_time = time.perf_counter()
        payload = self._build_request(request)

        try:
            response = await self.client.chat.completions.create(**payload)
        except APITimeoutError as e:
            raise TimeoutError(
                f"OpenAI request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except APIConnectionError as e:
            raise ProviderError(
                f"Failed to connect to OpenAI: {e}",
                provider=self.name,
            ) from e
        except APIStatusError as e:
            raise status_error_to_llm_error(
                self.name,
                e.status_code,
                str(getattr(e, "message", e)),
                request_id=getattr(e, "request_id", None),
                retry_after=parse_retry_after(e),
                filter_markers=("content_filter", "safety"),
            ) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(response, latency_ms)

    def _build_request(self, request: LLMRequest) -> dict[str, Any]:
        """Convert LLMRequest to OpenAI API format."""
        payload: dict[str, Any] = {
            "model": request.model or self._default_model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": request.temperature,
        }
        if request.max_tokens:
            payload["max_tokens"] = request.max_tokens
        return payload

    def _parse_response(self, response: Any, latency_ms: int) -> LLMResponse:
        """Convert OpenAI response to LLMResponse."""
        choice = response.choices[0]
        usage = response.usage

        return LLMResponse(
            text=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=Usage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            model=response.model,
            provider=self.name,
            latency_ms=latency_ms,
            request_id=response.id,
        )
