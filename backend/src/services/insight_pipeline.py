"""Insight generation pipeline.

Runs the fixed stage sequence for one book:

    analyzing → generating → gapAnalysis → audioScript → audioSynthesis → completed

with `failed` reachable from any stage. Progress is reported at fixed
checkpoints (5, 25, 65, 80, 85, 95, 100) to the broadcaster (when an
insight id is given) and to an optional callback. Percent values never
decrease within a run.

Stage 0, gap analysis, the audio script and audio synthesis degrade
instead of failing. Anything else is logged, broadcast as `failed` and
re-raised.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Union

from src.llm import LLMClient, get_client
from src.models.insight import (
    GeneratedInsight,
    PremiumSection,
    SectionType,
    build_table_of_contents,
    total_content_words,
)
from src.models.progress import ProgressStatus
from src.services.audio_script import generate_audio_script
from src.services.book_analyzer import analyze_book
from src.services.chunked_generation import ChunkResult, generate_guide_chunked
from src.services.gap_analysis import merge_gap_sections, run_gap_analysis
from src.services.narration_service import NarrationService, get_narration_service
from src.services.progress_broadcaster import ProgressBroadcaster, get_broadcaster

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """States of one pipeline run."""
    idle = "idle"
    analyzing = "analyzing"
    generating = "generating"
    gapAnalysis = "gapAnalysis"
    audioScript = "audioScript"
    audioSynthesis = "audioSynthesis"
    completed = "completed"
    failed = "failed"


# Percent reported when each checkpoint is reached
START_PERCENT = 5
ANALYSIS_DONE_PERCENT = 25
GENERATION_DONE_PERCENT = 65
GAP_DONE_PERCENT = 80
SCRIPT_DONE_PERCENT = 85
AUDIO_DONE_PERCENT = 95
COMPLETE_PERCENT = 100

MIN_AUDIO_SCRIPT_CHARS = 100
SUMMARY_MAX_CHARS = 1000
KEY_THEME_LIMIT = 5
GAP_EXCERPT_CHARS = 20_000

ProgressCallback = Callable[[str, int], Union[None, Awaitable[None]]]


class _ProgressReporter:
    """Monotonic progress for one run, fanned out to broadcaster and callback."""

    def __init__(
        self,
        insight_id: Optional[int],
        broadcaster: ProgressBroadcaster,
        on_progress: Optional[ProgressCallback],
    ):
        self.insight_id = insight_id
        self.broadcaster = broadcaster
        self.on_progress = on_progress
        self.percent = 0
        self.stage = PipelineStage.idle

    async def _notify(self, stage: PipelineStage, percent: int) -> None:
        if self.on_progress is None:
            return
        result = self.on_progress(stage.value, percent)
        if inspect.isawaitable(result):
            await result

    async def advance(
        self,
        stage: PipelineStage,
        percent: int,
        step: str,
        section_count: Optional[int] = None,
        word_count: Optional[int] = None,
    ) -> None:
        self.percent = max(self.percent, percent)
        self.stage = stage
        status = ProgressStatus.completed if stage == PipelineStage.completed else ProgressStatus.generating
        if self.insight_id is not None:
            await self.broadcaster.broadcast(
                self.insight_id,
                status,
                self.percent,
                step,
                section_count=section_count,
                word_count=word_count,
            )
        await self._notify(stage, self.percent)

    async def fail(self, error: str) -> None:
        failed_in = self.stage
        self.stage = PipelineStage.failed
        if self.insight_id is not None:
            try:
                await self.broadcaster.broadcast(
                    self.insight_id,
                    ProgressStatus.failed,
                    self.percent,
                    f"Failed during {failed_in.value}",
                    error=error,
                )
            except Exception:
                logger.warning(
                    "Could not broadcast failure",
                    exc_info=True,
                    extra={"insight_id": self.insight_id},
                )
        await self._notify(PipelineStage.failed, self.percent)


class InsightPipeline:
    """Sequences the generation stages for one book at a time.

    Collaborators default to the module singletons; tests inject stubs.
    """

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        broadcaster: Optional[ProgressBroadcaster] = None,
        narration: Optional[NarrationService] = None,
    ):
        self._client = client
        self._broadcaster = broadcaster
        self._narration = narration

    @property
    def client(self) -> LLMClient:
        return self._client or get_client()

    @property
    def broadcaster(self) -> ProgressBroadcaster:
        return self._broadcaster or get_broadcaster()

    @property
    def narration(self) -> NarrationService:
        return self._narration or get_narration_service()

    async def run(
        self,
        book_title: str,
        book_author: Optional[str],
        book_text: str,
        insight_id: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> GeneratedInsight:
        """Generate a complete insight guide.

        Args:
            book_title: Title of the source book.
            book_author: Author, if known.
            book_text: Full extracted text.
            insight_id: Broadcast progress under this id when given.
            on_progress: Called with (stage, percent) at every checkpoint.

        Returns:
            The assembled GeneratedInsight.

        Raises:
            ContentValidationError: Stage 1 minimums not met.
            ChunkGenerationError: A Stage 1 chunk failed.
            asyncio.CancelledError: The run was cancelled.
        """
        progress = _ProgressReporter(insight_id, self.broadcaster, on_progress)
        log_extra = {"insight_id": insight_id, "book_title": book_title}
        logger.info(
            "Insight pipeline started",
            extra={**log_extra, "text_chars": len(book_text)},
        )

        try:
            return await self._run_stages(book_title, book_author, book_text, insight_id, progress)
        except asyncio.CancelledError:
            logger.warning(
                "Insight pipeline cancelled",
                extra={**log_extra, "stage": progress.stage.value},
            )
            await progress.fail("Generation cancelled")
            raise
        except Exception as e:
            logger.error(
                "Insight pipeline failed during %s: %s",
                progress.stage.value,
                e,
                exc_info=True,
                extra={**log_extra, "stage": progress.stage.value},
            )
            await progress.fail(str(e))
            raise

    async def _run_stages(
        self,
        book_title: str,
        book_author: Optional[str],
        book_text: str,
        insight_id: Optional[int],
        progress: _ProgressReporter,
    ) -> GeneratedInsight:
        client = self.client
        author = book_author or "Unknown Author"
        degraded: List[str] = []

        # Stage 0
        await progress.advance(PipelineStage.analyzing, START_PERCENT, "Analyzing book structure")
        analysis_result = await analyze_book(book_title, book_author, book_text, client=client)
        analysis = analysis_result.value
        if analysis_result.degraded:
            degraded.append(PipelineStage.analyzing.value)
        await progress.advance(
            PipelineStage.generating,
            ANALYSIS_DONE_PERCENT,
            f"Analysis complete: {len(analysis.coreConcepts)} core concepts",
        )

        # Stage 1
        async def on_chunk(result: ChunkResult, index: int, total: int) -> None:
            span = GENERATION_DONE_PERCENT - ANALYSIS_DONE_PERCENT
            await progress.advance(
                PipelineStage.generating,
                ANALYSIS_DONE_PERCENT + span * index // total,
                f"Generated {result.spec.name} sections ({index}/{total})",
            )

        guide = await generate_guide_chunked(analysis, book_text, client=client, on_chunk=on_chunk)
        await progress.advance(
            PipelineStage.gapAnalysis,
            GENERATION_DONE_PERCENT,
            "Content generated, checking completeness",
            section_count=len(guide.sections),
            word_count=guide.wordCount,
        )

        # Gap analysis
        gap_result = await run_gap_analysis(
            guide.sections,
            book_title,
            book_author,
            book_text[:GAP_EXCERPT_CHARS],
            client=client,
        )
        if gap_result.degraded:
            degraded.append(PipelineStage.gapAnalysis.value)
        gap = gap_result.value
        gap_applied = bool(gap.generatedSections)
        sections: List[PremiumSection] = (
            merge_gap_sections(guide.sections, gap.generatedSections) if gap_applied else guide.sections
        )
        word_count = total_content_words(sections)
        await progress.advance(
            PipelineStage.audioScript,
            GAP_DONE_PERCENT,
            f"Completeness check done ({len(gap.generatedSections)} sections added)",
            section_count=len(sections),
            word_count=word_count,
        )

        # Audio script
        script_result = await generate_audio_script(
            guide.title,
            guide.bookTitle,
            guide.bookAuthor,
            sections,
            analysis,
            client=client,
        )
        if script_result.degraded:
            degraded.append(PipelineStage.audioScript.value)
        audio_script = script_result.value
        await progress.advance(PipelineStage.audioSynthesis, SCRIPT_DONE_PERCENT, "Audio script ready")

        # Audio synthesis (optional)
        audio_url: Optional[str] = None
        audio_duration: Optional[int] = None
        narration = self.narration
        if narration.is_configured() and len(audio_script) > MIN_AUDIO_SCRIPT_CHARS:
            try:
                audio = await narration.generate_audio_narration(
                    audio_script,
                    file_key=str(insight_id) if insight_id is not None else None,
                )
            except Exception as e:
                degraded.append(PipelineStage.audioSynthesis.value)
                logger.warning(
                    "Audio synthesis failed, continuing without audio: %s",
                    e,
                    extra={"insight_id": insight_id, "book_title": book_title},
                )
            else:
                if audio is not None:
                    audio_url = audio.audioUrl
                    audio_duration = audio.durationEstimateSeconds
            step = "Audio narration generated" if audio_url else "Audio narration unavailable"
        else:
            logger.info(
                "Skipping audio synthesis",
                extra={
                    "insight_id": insight_id,
                    "speech_configured": narration.is_configured(),
                    "script_chars": len(audio_script),
                },
            )
            step = "Audio narration skipped"
        await progress.advance(PipelineStage.audioSynthesis, AUDIO_DONE_PERCENT, step)

        quick_glance = next((s for s in sections if s.type == SectionType.quickGlance), None)
        summary = (
            quick_glance.content
            if quick_glance
            else f'A comprehensive analysis of "{book_title}" by {author}'
        )

        insight = GeneratedInsight(
            title=guide.title,
            summary=summary[:SUMMARY_MAX_CHARS],
            keyThemes=[c.conceptName for c in analysis.top_concepts(KEY_THEME_LIMIT)],
            sections=sections,
            tableOfContents=build_table_of_contents(sections),
            audioScript=audio_script,
            audioUrl=audio_url,
            audioDuration=audio_duration,
            wordCount=word_count,
            bookAnalysis=analysis,
            gapAnalysisApplied=gap_applied,
            completenessScore=gap.completenessScore,
            degradedStages=degraded,
        )

        await progress.advance(
            PipelineStage.completed,
            COMPLETE_PERCENT,
            "Insight guide complete",
            section_count=len(sections),
            word_count=word_count,
        )
        logger.info(
            "Insight pipeline complete",
            extra={
                "insight_id": insight_id,
                "book_title": book_title,
                "sections": len(sections),
                "word_count": word_count,
                "gap_analysis_applied": gap_applied,
                "completeness_score": gap.completenessScore,
                "degraded_stages": degraded,
                "has_audio": audio_url is not None,
            },
        )
        return insight


async def generate_premium_insight(
    book_title: str,
    book_author: Optional[str],
    book_text: str,
    insight_id: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> GeneratedInsight:
    """Run the pipeline with the default collaborators."""
    return await InsightPipeline().run(
        book_title,
        book_author,
        book_text,
        insight_id=insight_id,
        on_progress=on_progress,
    )
