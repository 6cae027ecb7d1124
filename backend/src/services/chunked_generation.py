"""Stage 1: chunked guide generation.

A single call cannot produce the 9,000-12,000 word guide within one
response, so generation is split into three sequential chunks
(Foundation, Core Concepts, Application). Each chunk is soft-checked
against its own target; the assembled guide is hard-validated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from src.llm import LLMClient, get_client
from src.models.insight import (
    REQUIRED_SECTION_TYPES,
    BookAnalysis,
    PremiumGuide,
    PremiumSection,
    SectionType,
    total_content_words,
    total_word_count,
)
from src.services.errors import ChunkGenerationError, ContentValidationError
from src.services.prompts import (
    build_application_prompt,
    build_chunk_system_prompt,
    build_core_concepts_prompt,
    build_foundation_prompt,
)
from src.services.response_parsing import parse_json_object
from src.services.section_normalizer import normalize_sections, renumber_sections

logger = logging.getLogger(__name__)

CHUNK_TEXT_MAX_CHARS = 80_000
CHUNK_EXCERPT_CHARS = 20_000
CHUNK_MAX_TOKENS = 8192
CORE_CONCEPT_LIMIT = 5

# A chunk below this share of its target is logged, not retried
SOFT_TARGET_RATIO = 0.8

MIN_TOTAL_WORDS = 9000
MIN_SECTION_COUNT = 20


@dataclass(frozen=True)
class ChunkSpec:
    """One independently prompted slice of the guide."""

    name: str
    target_words: int
    section_types: Tuple[SectionType, ...]

    @property
    def slug(self) -> str:
        return self.name.lower().replace(" ", "-")


FOUNDATION_CHUNK = ChunkSpec(
    name="Foundation",
    target_words=3000,
    section_types=(
        SectionType.quickGlance,
        SectionType.foundationalNarrative,
        SectionType.executiveSummary,
    ),
)
CORE_CONCEPTS_CHUNK = ChunkSpec(
    name="Core Concepts",
    target_words=4000,
    section_types=(
        SectionType.conceptExplanation,
        SectionType.practicalExample,
        SectionType.insightAtlasNote,
        SectionType.actionBox,
        SectionType.visualFramework,
    ),
)
APPLICATION_CHUNK = ChunkSpec(
    name="Application",
    target_words=3000,
    section_types=(
        SectionType.selfAssessment,
        SectionType.trackingTemplate,
        SectionType.structureMap,
        SectionType.keyTakeaways,
    ),
)


@dataclass
class ChunkResult:
    spec: ChunkSpec
    sections: List[PremiumSection]
    word_count: int
    provider: str
    below_target: bool = False
    missing_expected_types: bool = False


ChunkCallback = Callable[[ChunkResult, int, int], Awaitable[None]]


def validate_guide_content(sections: Sequence[PremiumSection]) -> None:
    """Hard minimums for an assembled guide.

    Raises:
        ContentValidationError: Below 9000 content words, below 20 sections, or a
            required section type is missing.
    """
    word_count = total_content_words(list(sections))
    section_count = len(sections)
    present = {s.type for s in sections}
    missing = [t.value for t in REQUIRED_SECTION_TYPES if t not in present]

    if word_count < MIN_TOTAL_WORDS:
        raise ContentValidationError(
            f"Chunked generation failed validation: {word_count} words "
            f"(minimum {MIN_TOTAL_WORDS:,} required)",
            word_count=word_count,
            section_count=section_count,
            missing_types=missing,
        )
    if section_count < MIN_SECTION_COUNT:
        raise ContentValidationError(
            f"Chunked generation failed validation: {section_count} sections "
            f"(minimum {MIN_SECTION_COUNT} required)",
            word_count=word_count,
            section_count=section_count,
            missing_types=missing,
        )
    if missing:
        raise ContentValidationError(
            f"Chunked generation missing required sections: {', '.join(missing)}",
            word_count=word_count,
            section_count=section_count,
            missing_types=missing,
        )


async def generate_chunk(
    spec: ChunkSpec,
    user_prompt: str,
    client: LLMClient,
) -> ChunkResult:
    """Generate and parse one chunk.

    Raises:
        ChunkGenerationError: Provider exhaustion or unparseable output.
    """
    logger.info(
        "Generating chunk",
        extra={
            "chunk": spec.name,
            "target_words": spec.target_words,
            "section_types": [t.value for t in spec.section_types],
        },
    )

    try:
        generation = await client.generate(
            system_prompt=build_chunk_system_prompt(spec.target_words, spec.section_types),
            user_prompt=user_prompt,
            max_tokens=CHUNK_MAX_TOKENS,
            truncate_input=True,
        )
        payload = parse_json_object(generation.content)
    except Exception as e:
        logger.error(
            "Chunk %s generation failed: %s",
            spec.name,
            e,
            extra={"chunk": spec.name, "error_type": type(e).__name__},
        )
        raise ChunkGenerationError(f"Chunk {spec.name} generation failed: {e}", chunk=spec.name) from e

    raw_sections = payload.get("sections")
    if not isinstance(raw_sections, list):
        raw_sections = []
    sections = normalize_sections(raw_sections, id_prefix=spec.slug)
    word_count = total_word_count(sections)

    result = ChunkResult(
        spec=spec,
        sections=sections,
        word_count=word_count,
        provider=generation.provider,
    )

    minimum = int(spec.target_words * SOFT_TARGET_RATIO)
    if word_count < minimum:
        result.below_target = True
        logger.warning(
            "Chunk %s below target: %d words (minimum %d)",
            spec.name,
            word_count,
            minimum,
            extra={"chunk": spec.name, "word_count": word_count, "target": spec.target_words},
        )

    present = {s.type for s in sections}
    if not present.intersection(spec.section_types):
        result.missing_expected_types = True
        logger.warning(
            "Chunk %s missing expected section types",
            spec.name,
            extra={
                "chunk": spec.name,
                "expected": [t.value for t in spec.section_types],
                "actual": sorted(t.value for t in present),
            },
        )

    logger.info(
        "Chunk complete",
        extra={
            "chunk": spec.name,
            "sections": len(sections),
            "word_count": word_count,
            "coverage_pct": round(word_count / spec.target_words * 100),
            "provider": generation.provider,
        },
    )
    return result


async def generate_guide_chunked(
    analysis: BookAnalysis,
    book_text: str,
    client: Optional[LLMClient] = None,
    on_chunk: Optional[ChunkCallback] = None,
) -> PremiumGuide:
    """Run the three chunks in order and assemble a validated guide.

    Args:
        analysis: Stage 0 output.
        book_text: Full book text.
        client: LLM client override.
        on_chunk: Awaited after each chunk with (result, index, total).

    Raises:
        ChunkGenerationError: A chunk failed.
        ContentValidationError: The assembled guide is below the minimums.
    """
    client = client or get_client()
    text = book_text[:CHUNK_TEXT_MAX_CHARS]
    excerpt = text[:CHUNK_EXCERPT_CHARS]

    sections: List[PremiumSection] = []
    plan = [
        (FOUNDATION_CHUNK, lambda: build_foundation_prompt(analysis, excerpt)),
        (CORE_CONCEPTS_CHUNK, lambda: build_core_concepts_prompt(analysis, excerpt, CORE_CONCEPT_LIMIT)),
        # Built lazily so it sees the sections of the first two chunks
        (APPLICATION_CHUNK, lambda: build_application_prompt(analysis, excerpt, sections)),
    ]

    for index, (spec, build_prompt) in enumerate(plan, start=1):
        result = await generate_chunk(spec, build_prompt(), client)
        sections.extend(result.sections)
        if on_chunk is not None:
            await on_chunk(result, index, len(plan))

    sections = renumber_sections(sections)
    validate_guide_content(sections)

    meta = analysis.bookMetadata
    guide = PremiumGuide.assemble(
        title=f"Insight Atlas Guide: {meta.title}",
        book_title=meta.title,
        book_author=meta.author or "Unknown",
        sections=sections,
    )

    visual_sections = sum(1 for s in sections if s.visualType is not None)
    logger.info(
        "Chunked generation complete",
        extra={
            "sections": len(sections),
            "word_count": guide.wordCount,
            "avg_words_per_section": round(guide.wordCount / len(sections)),
            "visual_coverage_pct": round(visual_sections / len(sections) * 100),
        },
    )
    return guide
