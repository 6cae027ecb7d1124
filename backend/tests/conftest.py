"""Pytest fixtures for testing."""

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from src.api.main import app
from src.db import mongo
from src.llm.models import TextGeneration
from src.services import progress_broadcaster, progress_cache
from src.services.prompts import (
    ANALYSIS_SYSTEM_PROMPT,
    AUDIO_SCRIPT_SYSTEM_PROMPT,
    GAP_ANALYSIS_SYSTEM_PROMPT,
)


@pytest_asyncio.fixture
async def mock_db() -> AsyncGenerator[Any, None]:
    """Provide a mock MongoDB database for testing."""
    # Create mock client
    mock_client = AsyncMongoMockClient()
    mock_database = mock_client[mongo.DATABASE_NAME]

    # Replace the real client with mock
    mongo.set_client(mock_client)

    yield mock_database

    # Cleanup
    mongo.set_client(None)


@pytest_asyncio.fixture
async def client(mock_db: Any) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def broadcaster() -> Any:
    """Fresh broadcaster over an in-memory cache, installed as the default."""
    cache = progress_cache.InMemoryProgressCache()
    instance = progress_broadcaster.ProgressBroadcaster(cache=cache, eviction_delay_seconds=0.01)
    progress_cache.set_progress_cache(cache)
    progress_broadcaster.set_broadcaster(instance)
    yield instance
    progress_broadcaster.set_broadcaster(None)
    progress_cache.set_progress_cache(None)


class FakeWebSocket:
    """Stands in for a FastAPI WebSocket: records every message sent."""

    def __init__(self, fail: bool = False):
        self.sent: list[dict] = []
        self.fail = fail

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(message)


@pytest.fixture
def fake_websocket() -> Callable[..., FakeWebSocket]:
    return FakeWebSocket


# Canned LLM content


def _section(section_type: str, words: int, title: str | None = None, **extra: Any) -> dict[str, Any]:
    return {
        "type": section_type,
        "title": title or f"{section_type} section",
        "content": " ".join(f"{section_type}{i}" for i in range(words)),
        **extra,
    }


@pytest.fixture
def make_section() -> Callable[..., dict[str, Any]]:
    """Factory for raw section payloads with an exact word count."""
    return _section


def _analysis_payload(title: str = "Atomic Habits", author: str = "James Clear") -> dict[str, Any]:
    return {
        "bookMetadata": {"title": title, "author": author, "publicationYear": 2018},
        "classification": {"primaryCategory": "Self-Help", "complexityLevel": "Accessible"},
        "structure": {"totalChapters": 20, "chapterTitles": ["The Surprising Power of Atomic Habits"]},
        "coreConcepts": [
            {"conceptName": "Habit Loop", "recommendedVisual": "flowDiagram"},
            {"conceptName": "Identity-Based Habits", "recommendedVisual": "conceptMap"},
            {"conceptName": "Two-Minute Rule", "recommendedVisual": "notARealVisual"},
            {"conceptName": "Environment Design", "recommendedVisual": "comparisonMatrix"},
            {"conceptName": "Plateau of Latent Potential", "recommendedVisual": "barChart"},
            {"conceptName": "Habit Stacking", "recommendedVisual": "timeline"},
        ],
        "crossReferences": {"psychologicalFrameworks": ["Operant conditioning"]},
        "toneAnalysis": {"authorVoice": "Practical and warm"},
    }


@pytest.fixture
def analysis_payload() -> Callable[..., dict[str, Any]]:
    return _analysis_payload


def _foundation_payload() -> dict[str, Any]:
    return {
        "sections": [
            _section("quickGlance", 1000, "Quick Glance"),
            _section("foundationalNarrative", 1000, "The Story Behind the Book"),
            _section("executiveSummary", 1000, "Executive Summary"),
        ]
    }


def _core_payload() -> dict[str, Any]:
    sections = []
    for n in range(3):
        sections.extend([
            _section("conceptExplanation", 400, f"Concept {n}", visualType="flowDiagram"),
            _section("practicalExample", 300, f"Example {n}"),
            _section("insightAtlasNote", 200, f"Note {n}", metadata={"keyDistinction": "x"}),
            _section("actionBox", 100, f"Action {n}", metadata={"actionSteps": ["Do one", "Do two", "Do three"]}),
        ])
    return {"sections": sections}


def _application_payload() -> dict[str, Any]:
    return {
        "sections": [
            _section("selfAssessment", 600, "Self Assessment"),
            _section("trackingTemplate", 600, "Tracking Template"),
            _section("reflectionPrompts", 500, "Reflection Prompts"),
            _section("structureMap", 400, "Structure Map"),
            _section("keyTakeaways", 500, "Key Takeaways"),
            _section("dialogueScript", 400, "Dialogue Script"),
        ]
    }


def _gap_payload() -> dict[str, Any]:
    return {
        "gapsFound": ["enhancedExercises"],
        "generatedContent": [_section("scenarioResponse", 300, "Scenario Practice")],
        "completenessScore": 82,
    }


AUDIO_SCRIPT = (
    "Welcome to this Insight Atlas narration. Small habits compound into remarkable results "
    "when they are repeated with patience, and the systems you build matter more than the goals you set."
)


class FakeLLMClient:
    """Answers generate() calls by stage, keyed off the system prompt.

    A reply may be a dict (sent as JSON), a str, or an exception to raise.
    """

    def __init__(self, **overrides: Any):
        self.replies: dict[str, Any] = {
            "analysis": _analysis_payload(),
            "foundation": _foundation_payload(),
            "core": _core_payload(),
            "application": _application_payload(),
            "gap": _gap_payload(),
            "audio": AUDIO_SCRIPT,
        }
        self.replies.update(overrides)
        self.calls: list[dict[str, Any]] = []

    @staticmethod
    def stage_for(system_prompt: str) -> str:
        if system_prompt == ANALYSIS_SYSTEM_PROMPT:
            return "analysis"
        if system_prompt == GAP_ANALYSIS_SYSTEM_PROMPT:
            return "gap"
        if system_prompt == AUDIO_SCRIPT_SYSTEM_PROMPT:
            return "audio"
        if "across quickGlance" in system_prompt:
            return "foundation"
        if "across conceptExplanation" in system_prompt:
            return "core"
        if "across selfAssessment" in system_prompt:
            return "application"
        raise AssertionError(f"Unexpected system prompt: {system_prompt[:80]}")

    def stages_called(self) -> list[str]:
        return [call["stage"] for call in self.calls]

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        truncate_input: bool = False,
        temperature: float = 0.7,
        correlation_id: str | None = None,
    ) -> TextGeneration:
        stage = self.stage_for(system_prompt)
        self.calls.append({
            "stage": stage,
            "user_prompt": user_prompt,
            "max_tokens": max_tokens,
            "truncate_input": truncate_input,
            "temperature": temperature,
        })

        reply = self.replies[stage]
        if callable(reply) and not isinstance(reply, type):
            reply = reply()
        if isinstance(reply, BaseException):
            raise reply
        content = reply if isinstance(reply, str) else json.dumps(reply)
        return TextGeneration(content=content, provider="primary", provider_name="fake", model="fake-model")


@pytest.fixture
def fake_llm() -> Callable[..., FakeLLMClient]:
    """Factory for a stage-aware fake LLM client."""
    return FakeLLMClient


class FakeNarration:
    """Narration collaborator that never touches the network."""

    def __init__(self, configured: bool = False, error: Exception | None = None):
        self.configured = configured
        self.error = error
        self.scripts: list[str] = []

    def is_configured(self) -> bool:
        return self.configured

    async def generate_audio_narration(self, script: str, voice_id: str | None = None, file_key: str | None = None):
        from src.models.book import AudioNarration

        self.scripts.append(script)
        if self.error is not None:
            raise self.error
        return AudioNarration(audioUrl=f"/audio/insight-{file_key}.mp3", durationEstimateSeconds=42)


@pytest.fixture
def fake_narration() -> Callable[..., FakeNarration]:
    return FakeNarration
