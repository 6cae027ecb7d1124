"""Abstract base class for LLM providers.

Defines the interface that all LLM providers must implement.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..errors import (
    AuthenticationError,
    ContentFilterError,
    InvalidRequestError,
    LLMError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
)
from ..models import LLMRequest, LLMResponse

# Credentials at or below this length are treated as placeholders
MIN_API_KEY_LENGTH = 10


class LLMProvider(ABC):
    """Base interface for LLM providers.

    Both backends (Anthropic, OpenAI) implement this interface so the
    client can treat them as interchangeable attempts in its cascade.
    """

    _api_key: str | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier: 'anthropic', 'openai'."""
        ...

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request and return the response.

        Args:
            request: Vendor-neutral LLM request.

        Returns:
            Vendor-neutral LLM response.

        Raises:
            AuthenticationError: Invalid or missing API key.
            RateLimitError: Rate limit exceeded (retryable).
            TimeoutError: Request timed out (retryable).
            InvalidRequestError: Malformed request (non-retryable).
            ContentFilterError: Response blocked by safety filters.
            ProviderError: Provider-side failure (retryable).
        """
        ...

    def is_configured(self) -> bool:
        """True when a non-empty, plausibly real API key is present."""
        return bool(self._api_key) and len(self._api_key.strip()) > MIN_API_KEY_LENGTH


def parse_retry_after(error: Any) -> float | None:
    """Read a numeric retry-after header off an SDK status error."""
    response = getattr(error, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def status_error_to_llm_error(
    provider: str,
    status_code: int,
    message: str,
    request_id: str | None = None,
    retry_after: float | None = None,
    filter_markers: tuple[str, ...] = ("safety",),
) -> LLMError:
    """Map an HTTP status from either SDK onto the LLMError hierarchy.

    Returns the exception instead of raising so each provider can chain
    it from the original SDK error.
    """
    label = provider.capitalize() if provider != "openai" else "OpenAI"

    if status_code in (401, 403):
        return AuthenticationError(
            f"{label} rejected credentials ({status_code}): {message}",
            provider=provider,
            request_id=request_id,
        )
    if status_code == 404:
        return ModelNotFoundError(
            f"Model not found: {message}", provider=provider, request_id=request_id
        )
    if status_code == 429:
        return RateLimitError(
            f"{label} rate limit exceeded: {message}",
            retry_after=retry_after,
            provider=provider,
            request_id=request_id,
        )
    if status_code == 400:
        lowered = message.lower()
        if any(marker in lowered for marker in filter_markers):
            return ContentFilterError(
                f"Content blocked by {label} safety filters: {message}",
                provider=provider,
                request_id=request_id,
            )
        return InvalidRequestError(
            f"Invalid request to {label}: {message}",
            provider=provider,
            request_id=request_id,
        )
    if status_code >= 500:
        return ProviderError(
            f"{label} server error ({status_code}): {message}",
            provider=provider,
            request_id=request_id,
        )
    return LLMError(
        f"{label} error ({status_code}): {message}",
        provider=provider,
        request_id=request_id,
    )
