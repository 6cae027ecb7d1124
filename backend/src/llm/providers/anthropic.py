"""Anthropic provider implementation.

Implements the LLMProvider interface for Anthropic's Messages API.
This is the primary backend for insight generation.
"""

import os
import time
from typing import Any

from anthropic import (
    AsyncAnthropic,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
)

from ..errors import AuthenticationError, ProviderError, TimeoutError
from ..models import LLMRequest, LLMResponse, Usage
from .base import LLMProvider, parse_retry_after, status_error_to_llm_error

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-5-20250929"


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API provider.

    The system prompt travels as the top-level `system` parameter and
    text blocks of the reply are concatenated.
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 300.0,
        default_model: str | None = None,
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key. Defaults to ANTHROPIC_API_KEY env var.
            timeout: Request timeout in seconds.
            default_model: Model used when the request leaves it empty.
                Defaults to PRIMARY_MODEL env var.
        """
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self._timeout = timeout
        self._default_model = (
            default_model or os.environ.get("PRIMARY_MODEL") or DEFAULT_ANTHROPIC_MODEL
        )
        self._client: AsyncAnthropic | None = None

    @property
    def name(self) -> str:
        """Provider identifier."""
        return "anthropic"

    @property
    def client(self) -> AsyncAnthropic:
        """Lazy-initialized Anthropic client."""
        if self._client is None:
            if not self._api_key:
                raise AuthenticationError(
                    "Anthropic API key not configured. Set ANTHROPIC_API_KEY environment variable.",
                    provider=self.name,
                )
            self._client = AsyncAnthropic(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request to Anthropic."""
        start_time = time.perf_counter()
        payload = self._build_request(request)

        try:
            response = await self.client.messages.create(**payload)
        except APITimeoutError as e:
            raise TimeoutError(
                f"Anthropic request timed out after {self._timeout}s",
                provider=self.name,
            ) from e
        except APIConnectionError as e:
            raise ProviderError(
                f"Failed to connect to Anthropic: {e}",
                provider=self.name,
            ) from e
        except APIStatusError as e:
            raise status_error_to_llm_error(
                self.name,
                e.status_code,
                str(getattr(e, "message", e)),
                request_id=getattr(e, "request_id", None),
                retry_after=parse_retry_after(e),
                filter_markers=("safety", "harmful"),
            ) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        return self._parse_response(response, latency_ms)

    def _build_request(self, request: LLMRequest) -> dict[str, Any]:
        """Convert LLMRequest to Anthropic API format."""
        system_parts = [m.content for m in request.messages if m.role == "system"]
        messages = [
            {"role": m.role, "content": m.content}
            for m in request.messages
            if m.role != "system"
        ]

        payload: dict[str, Any] = {
            "model": request.model or self._default_model,
            "messages": messages,
            "max_tokens": request.max_tokens or 4096,
            # Anthropic accepts 0-1, our requests allow up to 2
            "temperature": min(request.temperature, 1.0),
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        return payload

    def _parse_response(self, response: Any, latency_ms: int) -> LLMResponse:
        """Convert Anthropic response to LLMResponse."""
        text_parts = [block.text for block in response.content if block.type == "text"]

        finish_reason_map = {
            "end_turn": "stop",
            "max_tokens": "length",
            "stop_sequence": "stop",
        }

        return LLMResponse(
            text="".join(text_parts) if text_parts else None,
            finish_reason=finish_reason_map.get(response.stop_reason, response.stop_reason or "stop"),
            usage=Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            ),
            model=response.model,
            provider=self.name,
            latency_ms=latency_ms,
            request_id=response.id,
        )
