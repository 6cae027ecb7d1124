"""LLM provider abstraction layer.

This module provides a vendor-neutral interface for generating text with a
primary provider (Anthropic) and a fallback provider (OpenAI).
"""

from .client import LLMClient, generate, get_client, set_client
from .errors import (
    AuthenticationError,
    ContentFilterError,
    EmptyResponseError,
    InvalidRequestError,
    LLMError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
    TimeoutError,
)
from .models import ChatMessage, LLMRequest, LLMResponse, TextGeneration, Usage
from .truncation import sample_text

__all__ = [
    "LLMClient",
    "generate",
    "get_client",
    "set_client",
    "LLMRequest",
    "LLMResponse",
    "ChatMessage",
    "TextGeneration",
    "Usage",
    "LLMError",
    "AuthenticationError",
    "RateLimitError",
    "TimeoutError",
    "InvalidRequestError",
    "ContentFilterError",
    "ProviderError",
    "ModelNotFoundError",
    "EmptyResponseError",
    "sample_text",
]
