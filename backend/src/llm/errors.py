"""LLM error hierarchy.

Custom exceptions for LLM operations with provider context.
Used by the provider cascade to decide logging and by the API layer
for user-friendly error messages.
"""


class LLMError(Exception):
    """Base exception for LLM operations."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.request_id = request_id
        self.correlation_id = correlation_id

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " ".join(parts)


class AuthenticationError(LLMError):
    """401/403 - Invalid or missing API key."""

    pass


class RateLimitError(LLMError):
    """429 - Rate limit exceeded.

    Retryable. Respect retry_after if provided.
    """

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        provider: str | None = None,
        request_id: str | None = None,
        correlation_id: str | None = None,
    ):
        super().__init__(message, provider, request_id, correlation_id)
        self.retry_after = retry_after


class TimeoutError(LLMError):
    """Request exceeded timeout threshold."""

    pass


class InvalidRequestError(LLMError):
    """400 - Malformed request (bad parameters, too many tokens, invalid model)."""

    pass


class ContentFilterError(LLMError):
    """Response blocked by the provider's safety system."""

    pass


class ProviderError(LLMError):
    """500/502/503 - Provider-side failure."""

    pass


class ModelNotFoundError(LLMError):
    """Model identifier not recognized."""

    pass


class EmptyResponseError(LLMError):
    """Provider answered but returned no text content."""

    pass


# Errors worth retrying against the same provider before moving on
RETRYABLE_ERRORS = (RateLimitError, TimeoutError, ProviderError)
