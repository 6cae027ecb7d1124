"""High-level LLM client with primary/fallback cascade.

Every generation call goes to the primary provider (Anthropic) when it is
configured and falls back to the general-purpose provider (OpenAI) on any
failure. Per-provider retries with exponential backoff are available but
disabled by default.
"""

import asyncio
import logging
import os
import random
import uuid
from dataclasses import dataclass
from typing import Literal

from .errors import (
    EmptyResponseError,
    LLMError,
    RateLimitError,
    RETRYABLE_ERRORS,
)
from .models import ChatMessage, LLMRequest, LLMResponse, TextGeneration
from .providers.anthropic import AnthropicProvider
from .providers.base import LLMProvider
from .providers.openai import OpenAIProvider
from .truncation import sample_text

logger = logging.getLogger(__name__)


@dataclass
class ProviderAttempt:
    """One entry of the cascade: which role a provider plays."""

    role: Literal["primary", "fallback"]
    provider: LLMProvider


class LLMClient:
    """High-level LLM client with fallback.

    Features:
    - Primary provider first, fallback provider on any error
    - Optional per-provider retry with exponential backoff + jitter
    - Proportional sampling of prompts above the input ceiling
    - Correlation ID tracking across attempts

    Configuration (env vars):
    - LLM_TIMEOUT_SECONDS: Request timeout (default: 300)
    - LLM_MAX_RETRIES: Max retries per provider (default: 0)
    - LLM_MAX_INPUT_CHARS: Input ceiling for truncate_input (default: 200000)
    """

    DEFAULT_TIMEOUT = 300.0
    DEFAULT_MAX_RETRIES = 0
    DEFAULT_MAX_INPUT_CHARS = 200_000
    DEFAULT_BASE_DELAY = 1.0  # Base delay for exponential backoff
    DEFAULT_MAX_DELAY = 30.0  # Maximum delay between retries

    def __init__(
        self,
        primary: LLMProvider | None = None,
        fallback: LLMProvider | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        max_input_chars: int | None = None,
    ):
        """Initialize LLM client.

        Args:
            primary: Primary provider. Defaults to AnthropicProvider.
            fallback: Fallback provider. Defaults to OpenAIProvider.
            timeout: Request timeout in seconds. Defaults to LLM_TIMEOUT_SECONDS env var.
            max_retries: Max retries per provider. Defaults to LLM_MAX_RETRIES env var.
            max_input_chars: Input ceiling. Defaults to LLM_MAX_INPUT_CHARS env var.
        """
        self._timeout = (
            timeout
            if timeout is not None
            else float(os.environ.get("LLM_TIMEOUT_SECONDS", self.DEFAULT_TIMEOUT))
        )
        self._max_retries = (
            max_retries
            if max_retries is not None
            else int(os.environ.get("LLM_MAX_RETRIES", self.DEFAULT_MAX_RETRIES))
        )
        self.max_input_chars = (
            max_input_chars
            if max_input_chars is not None
            else int(os.environ.get("LLM_MAX_INPUT_CHARS", self.DEFAULT_MAX_INPUT_CHARS))
        )

        self._primary = primary or AnthropicProvider(timeout=self._timeout)
        self._fallback = fallback or OpenAIProvider(timeout=self._timeout)

    def attempt_chain(self) -> list[ProviderAttempt]:
        """Configured providers in the order they should be tried."""
        chain = []
        if self._primary.is_configured():
            chain.append(ProviderAttempt("primary", self._primary))
        if self._fallback.is_configured():
            chain.append(ProviderAttempt("fallback", self._fallback))
        return chain

    def is_primary_available(self) -> bool:
        return self._primary.is_configured()

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        truncate_input: bool = False,
        temperature: float = 0.7,
        correlation_id: str | None = None,
    ) -> TextGeneration:
        """Generate text, trying the primary provider then the fallback.

        Args:
            system_prompt: Instructions for the model.
            user_prompt: The request body, usually carrying book text.
            max_tokens: Output token budget.
            truncate_input: Sample the user prompt down to the input
                ceiling when it is longer.
            temperature: Sampling temperature.
            correlation_id: Optional ID for tracking across attempts.

        Returns:
            Non-empty text plus which provider role produced it.

        Raises:
            LLMError: If every configured provider fails.
        """
        correlation_id = correlation_id or str(uuid.uuid4())

        input_truncated = False
        if truncate_input and len(user_prompt) > self.max_input_chars:
            original_length = len(user_prompt)
            user_prompt = sample_text(user_prompt, self.max_input_chars)
            input_truncated = True
            logger.info(
                "Prompt truncated to input ceiling",
                extra={
                    "correlation_id": correlation_id,
                    "original_chars": original_length,
                    "truncated_chars": len(user_prompt),
                    "max_input_chars": self.max_input_chars,
                },
            )

        request = LLMRequest(
            messages=[
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )

        chain = self.attempt_chain()
        if not chain:
            raise LLMError(
                "No LLM providers configured. Set ANTHROPIC_API_KEY or OPENAI_API_KEY.",
                correlation_id=correlation_id,
            )

        logger.info(
            "LLM generation requested",
            extra={
                "correlation_id": correlation_id,
                "system_prompt_chars": len(system_prompt),
                "user_prompt_chars": len(user_prompt),
                "max_tokens": max_tokens,
                "providers": [a.provider.name for a in chain],
            },
        )

        last_error: Exception | None = None
        for attempt in chain:
            try:
                response = await self._generate_with_retry(
                    request=request,
                    provider=attempt.provider,
                    correlation_id=correlation_id,
                )
            except Exception as e:
                last_error = e
                logger.warning(
                    "Provider %s (%s) failed: %s",
                    attempt.provider.name,
                    attempt.role,
                    str(e),
                    extra={
                        "correlation_id": correlation_id,
                        "provider": attempt.provider.name,
                        "error_type": type(e).__name__,
                    },
                )
                continue

            if attempt.role == "fallback" and last_error is not None:
                logger.info(
                    "Fallback provider succeeded",
                    extra={"correlation_id": correlation_id, "provider": attempt.provider.name},
                )

            return TextGeneration(
                content=response.text,
                provider=attempt.role,
                provider_name=response.provider,
                model=response.model,
                input_truncated=input_truncated,
                usage=response.usage,
            )

        if isinstance(last_error, LLMError):
            raise last_error
        raise LLMError(
            f"All providers failed: {last_error}",
            correlation_id=correlation_id,
        ) from last_error

    async def _generate_with_retry(
        self,
        request: LLMRequest,
        provider: LLMProvider,
        correlation_id: str,
    ) -> LLMResponse:
        """Generate with retry logic for a single provider.

        Raises:
            EmptyResponseError: The provider answered with no text.
            LLMError: After all retries exhausted.
        """
        last_error: LLMError | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await provider.generate(request)
            except RETRYABLE_ERRORS as e:
                last_error = e
                e.correlation_id = correlation_id
                logger.warning(
                    "Retryable error on attempt %d/%d: %s",
                    attempt + 1,
                    self._max_retries + 1,
                    str(e),
                    extra={
                        "correlation_id": correlation_id,
                        "provider": provider.name,
                        "attempt": attempt + 1,
                        "error_type": type(e).__name__,
                    },
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._calculate_backoff(attempt, e))
                continue

            if not response.text or not response.text.strip():
                raise EmptyResponseError(
                    "Provider returned no text content",
                    provider=provider.name,
                    request_id=response.request_id,
                    correlation_id=correlation_id,
                )

            logger.info(
                "LLM request succeeded",
                extra={
                    "correlation_id": correlation_id,
                    "provider": response.provider,
                    "model": response.model,
                    "latency_ms": response.latency_ms,
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "finish_reason": response.finish_reason,
                },
            )
            return response

        if last_error:
            raise last_error

        raise LLMError(
            f"Provider {provider.name} failed after {self._max_retries + 1} attempts",
            provider=provider.name,
            correlation_id=correlation_id,
        )

    def _calculate_backoff(self, attempt: int, error: Exception) -> float:
        """Calculate backoff delay with exponential growth and jitter."""
        if isinstance(error, RateLimitError) and error.retry_after:
            return min(error.retry_after, self.DEFAULT_MAX_DELAY)

        base_delay = self.DEFAULT_BASE_DELAY * (2 ** attempt)
        # ±25% jitter
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return min(base_delay + jitter, self.DEFAULT_MAX_DELAY)


# Convenience functions for module-level access
_default_client: LLMClient | None = None


def get_client() -> LLMClient:
    """Get the default LLM client singleton."""
    global _default_client
    if _default_client is None:
        _default_client = LLMClient()
    return _default_client


def set_client(client: LLMClient | None) -> None:
    """Replace the default client (used by tests and the CLI)."""
    global _default_client
    _default_client = client


async def generate(
    system_prompt: str,
    user_prompt: str,
    max_tokens: int,
    truncate_input: bool = False,
    correlation_id: str | None = None,
) -> TextGeneration:
    """Generate text using the default client."""
    return await get_client().generate(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        max_tokens=max_tokens,
        truncate_input=truncate_input,
        correlation_id=correlation_id,
    )
