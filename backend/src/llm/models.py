"""LLM data models.

Vendor-neutral request and response models for LLM interactions.
These models abstract away provider-specific details.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A single message in the conversation."""

    role: Literal["system", "user", "assistant"]
    content: str


class LLMRequest(BaseModel):
    """Vendor-neutral LLM request."""

    messages: list[ChatMessage]
    model: str = ""  # empty means provider default
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = None


class Usage(BaseModel):
    """Token usage statistics."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class LLMResponse(BaseModel):
    """Vendor-neutral LLM response from a single provider."""

    text: str | None
    finish_reason: str
    usage: Usage
    model: str
    provider: str
    latency_ms: int
    request_id: str | None = None


class TextGeneration(BaseModel):
    """Normalized result of the primary/fallback provider cascade.

    `provider` tells callers which role answered; `provider_name` is the
    concrete backend ("anthropic", "openai").
    """

    content: str = Field(min_length=1)
    provider: Literal["primary", "fallback"]
    provider_name: str
    model: str
    input_truncated: bool = False
    usage: Usage | None = None
