"""Tests for the insight generation pipeline."""

import asyncio
from datetime import UTC

import pytest

from src.llm.errors import ProviderError, TimeoutError
from src.models.insight import SectionType
from src.services.errors import ChunkGenerationError
from src.services.insight_pipeline import InsightPipeline

BOOK_TEXT = "Chapter 1\nHabits are the compound interest of self-improvement. " * 50

EXPECTED_CHECKPOINTS = [
    ("analyzing", 5),
    ("generating", 25),
    ("generating", 38),
    ("generating", 51),
    ("generating", 65),
    ("gapAnalysis", 65),
    ("audioScript", 80),
    ("audioSynthesis", 85),
    ("audioSynthesis", 95),
    ("completed", 100),
]


def make_pipeline(client, broadcaster, narration) -> InsightPipeline:
    return InsightPipeline(client=client, broadcaster=broadcaster, narration=narration)


class TestPipelineSuccess:
    """Tests for a complete run."""

    @pytest.mark.asyncio
    async def test_generates_insight(self, fake_llm, broadcaster, fake_narration):
        client = fake_llm()
        pipeline = make_pipeline(client, broadcaster, fake_narration())

        insight = await pipeline.run("Atomic Habits", "James Clear", BOOK_TEXT)

        assert client.stages_called() == ["analysis", "foundation", "core", "application", "gap", "audio"]
        assert insight.title == "Insight Atlas Guide: Atomic Habits"
        assert len(insight.sections) == 22
        assert insight.sections[-1].type == SectionType.scenarioResponse
        assert insight.sections[-1].id == "section-22"
        assert insight.wordCount == 9300
        assert insight.generatedAt.tzinfo is UTC
        assert insight.gapAnalysisApplied is True
        assert insight.completenessScore == 82
        assert insight.keyThemes == [
            "Habit Loop",
            "Identity-Based Habits",
            "Two-Minute Rule",
            "Environment Design",
            "Plateau of Latent Potential",
        ]
        assert insight.summary.startswith("quickGlance0 quickGlance1")
        assert len(insight.summary) == 1000
        assert insight.audioScript.startswith("Welcome to this Insight Atlas narration.")
        assert insight.audioUrl is None
        assert insight.degradedStages == []
        assert [e.id for e in insight.tableOfContents] == [s.id for s in insight.sections]

    @pytest.mark.asyncio
    async def test_progress_callback_checkpoints(self, fake_llm, broadcaster, fake_narration):
        seen = []
        pipeline = make_pipeline(fake_llm(), broadcaster, fake_narration())

        await pipeline.run("Atomic Habits", "James Clear", BOOK_TEXT, on_progress=lambda s, p: seen.append((s, p)))

        assert seen == EXPECTED_CHECKPOINTS

    @pytest.mark.asyncio
    async def test_async_progress_callback(self, fake_llm, broadcaster, fake_narration):
        seen = []

        async def on_progress(stage, percent):
            seen.append(percent)

        await make_pipeline(fake_llm(), broadcaster, fake_narration()).run(
            "Atomic Habits", "James Clear", BOOK_TEXT, on_progress=on_progress
        )
        assert seen[-1] == 100

    @pytest.mark.asyncio
    async def test_broadcasts_monotonic_progress(self, fake_llm, broadcaster, fake_narration, fake_websocket):
        ws = fake_websocket()
        await broadcaster.subscribe(3, ws)

        await make_pipeline(fake_llm(), broadcaster, fake_narration()).run(
            "Atomic Habits", "James Clear", BOOK_TEXT, insight_id=3
        )

        percents = [m["percent"] for m in ws.sent]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert all(m["status"] == "generating" for m in ws.sent[:-1])
        assert ws.sent[-1]["status"] == "completed"
        assert ws.sent[-1]["sectionCount"] == 22
        assert ws.sent[-1]["wordCount"] == 9300

    @pytest.mark.asyncio
    async def test_no_gap_sections(self, fake_llm, broadcaster, fake_narration):
        client = fake_llm(gap={"gapsFound": [], "generatedContent": [], "completenessScore": 100})

        insight = await make_pipeline(client, broadcaster, fake_narration()).run("Atomic Habits", None, BOOK_TEXT)

        assert insight.gapAnalysisApplied is False
        assert len(insight.sections) == 21
        assert insight.completenessScore == 100


class TestPipelineDegradation:
    """Tests for soft stage failures."""

    @pytest.mark.asyncio
    async def test_degraded_stages_recorded(self, fake_llm, broadcaster, fake_narration):
        client = fake_llm(analysis="not json", gap=TimeoutError("slow"), audio=ProviderError("down"))

        insight = await make_pipeline(client, broadcaster, fake_narration()).run("Deep Work", "Cal Newport", BOOK_TEXT)

        assert insight.degradedStages == ["analyzing", "gapAnalysis", "audioScript"]
        assert insight.keyThemes == ["Core Thesis"]
        assert insight.gapAnalysisApplied is False
        assert insight.completenessScore == 100
        assert insight.audioScript.startswith('Welcome to your Insight Atlas guide for "Deep Work"')

    @pytest.mark.asyncio
    async def test_audio_synthesized_when_configured(self, fake_llm, broadcaster, fake_narration):
        narration = fake_narration(configured=True)

        insight = await make_pipeline(fake_llm(), broadcaster, narration).run(
            "Atomic Habits", "James Clear", BOOK_TEXT, insight_id=7
        )

        assert narration.scripts == [insight.audioScript]
        assert insight.audioUrl == "/audio/insight-7.mp3"
        assert insight.audioDuration == 42

    @pytest.mark.asyncio
    async def test_short_script_skips_synthesis(self, fake_llm, broadcaster, fake_narration):
        narration = fake_narration(configured=True)

        insight = await make_pipeline(fake_llm(audio="Too short."), broadcaster, narration).run(
            "Atomic Habits", "James Clear", BOOK_TEXT
        )

        assert narration.scripts == []
        assert insight.audioUrl is None
        assert insight.degradedStages == []

    @pytest.mark.asyncio
    async def test_synthesis_failure_is_soft(self, fake_llm, broadcaster, fake_narration):
        narration = fake_narration(configured=True, error=RuntimeError("tts down"))

        insight = await make_pipeline(fake_llm(), broadcaster, narration).run("Atomic Habits", "James Clear", BOOK_TEXT)

        assert insight.audioUrl is None
        assert insight.degradedStages == ["audioSynthesis"]


class TestPipelineFailure:
    """Tests for hard failures and cancellation."""

    @pytest.mark.asyncio
    async def test_chunk_failure_broadcasts_failed(self, fake_llm, broadcaster, fake_narration, fake_websocket):
        ws = fake_websocket()
        await broadcaster.subscribe(4, ws)
        seen = []
        pipeline = make_pipeline(fake_llm(core=ProviderError("down")), broadcaster, fake_narration())

        with pytest.raises(ChunkGenerationError):
            await pipeline.run("Atomic Habits", "James Clear", BOOK_TEXT, insight_id=4,
                               on_progress=lambda s, p: seen.append((s, p)))

        last = ws.sent[-1]
        assert last["status"] == "failed"
        assert last["percent"] == 38
        assert last["currentStep"] == "Failed during generating"
        assert "Core Concepts" in last["error"]
        assert seen[-1] == ("failed", 38)

    @pytest.mark.asyncio
    async def test_cancellation_broadcasts_failed(self, fake_llm, broadcaster, fake_narration, fake_websocket):
        started = asyncio.Event()

        class BlockingClient(fake_llm):
            async def generate(self, system_prompt, user_prompt, max_tokens, **kwargs):
                if self.stage_for(system_prompt) == "core":
                    started.set()
                    await asyncio.sleep(30)
                return await super().generate(system_prompt, user_prompt, max_tokens, **kwargs)

        ws = fake_websocket()
        await broadcaster.subscribe(5, ws)
        pipeline = make_pipeline(BlockingClient(), broadcaster, fake_narration())

        task = asyncio.create_task(pipeline.run("Atomic Habits", "James Clear", BOOK_TEXT, insight_id=5))
        await asyncio.wait_for(started.wait(), timeout=5)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        last = ws.sent[-1]
        assert last["status"] == "failed"
        assert last["error"] == "Generation cancelled"
        assert last["percent"] == 38
