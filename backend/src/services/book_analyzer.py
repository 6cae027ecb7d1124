"""Stage 0: book analysis and classification.

One LLM call over a bounded prefix of the book produces the BookAnalysis
that guides every later stage. This stage never fails the pipeline: any
provider or parse error yields a minimal generic analysis marked degraded.
"""

from __future__ import annotations

import logging
from typing import Optional

from src.llm import LLMClient, get_client
from src.models.insight import (
    BookAnalysis,
    BookMetadata,
    Classification,
    CoreConcept,
    GenerationRecommendations,
    OriginStory,
    StageResult,
    ToneAnalysis,
    VisualType,
    count_words,
)
from src.services.prompts import ANALYSIS_SYSTEM_PROMPT, build_analysis_user_prompt
from src.services.response_parsing import parse_json_object

logger = logging.getLogger(__name__)

ANALYSIS_MAX_CHARS = 50_000
ANALYSIS_MAX_TOKENS = 8000
ANALYSIS_TEMPERATURE = 0.3
TRUNCATION_NOTE = "\n\n[Text truncated for analysis...]"


def _generic_concept() -> CoreConcept:
    return CoreConcept(
        conceptName="Core Thesis",
        chapterSource="Introduction",
        briefDescription="The main argument of the book",
        recommendedVisual=VisualType.mindMap,
        visualRationale="Central concept with radiating ideas",
        exampleDomains=["Personal", "Professional"],
    )


def fallback_analysis(book_title: str, book_author: Optional[str], book_text: str) -> BookAnalysis:
    """Neutral analysis used when the real one cannot be produced."""
    return BookAnalysis(
        bookMetadata=BookMetadata(
            title=book_title,
            author=book_author or "Unknown",
            wordCountEstimate=str(count_words(book_text)),
        ),
        classification=Classification(
            primaryCategory="Self-Help/Personal Development",
            complexityLevel="Accessible",
            frameworkType="Mixed/Hybrid",
        ),
        originStory=OriginStory(present=False),
        coreConcepts=[_generic_concept()],
        toneAnalysis=ToneAnalysis(
            authorVoice="Conversational/Accessible",
            recommendedGuideTone="Accessible Professional",
        ),
        generationRecommendations=GenerationRecommendations(
            emphasisAreas=["Key concepts", "Practical applications"],
        ),
    )


def truncate_for_analysis(book_text: str, max_chars: int = ANALYSIS_MAX_CHARS) -> str:
    if len(book_text) <= max_chars:
        return book_text
    return book_text[:max_chars] + TRUNCATION_NOTE


def _clean_concepts(data: dict) -> int:
    """Drop unnamed concepts in place; return how many visuals will be coerced."""
    concepts = data.get("coreConcepts")
    if not isinstance(concepts, list):
        data["coreConcepts"] = []
        return 0
    data["coreConcepts"] = [
        c for c in concepts
        if isinstance(c, dict) and str(c.get("conceptName") or "").strip()
    ]
    known = {v.value for v in VisualType}
    return sum(1 for c in data["coreConcepts"] if c.get("recommendedVisual") not in known)


async def analyze_book(
    book_title: str,
    book_author: Optional[str],
    book_text: str,
    client: Optional[LLMClient] = None,
) -> StageResult[BookAnalysis]:
    """Run Stage 0.

    Args:
        book_title: Book title from extraction.
        book_author: Author if known.
        book_text: Full extracted text.
        client: LLM client override (defaults to the shared client).

    Returns:
        StageResult with the analysis; degraded when the fallback was used.
    """
    client = client or get_client()
    prompt = build_analysis_user_prompt(book_title, book_author, truncate_for_analysis(book_text))

    try:
        generation = await client.generate(
            system_prompt=ANALYSIS_SYSTEM_PROMPT,
            user_prompt=prompt,
            max_tokens=ANALYSIS_MAX_TOKENS,
            temperature=ANALYSIS_TEMPERATURE,
        )
        data = parse_json_object(generation.content)

        coerced = _clean_concepts(data)
        if coerced:
            logger.warning(
                "Coerced %d unknown recommendedVisual values to %s",
                coerced,
                VisualType.flowDiagram.value,
                extra={"book_title": book_title},
            )

        analysis = BookAnalysis.model_validate(data)
    except Exception as e:
        logger.warning(
            "Stage 0 analysis failed, using fallback analysis: %s",
            e,
            extra={"book_title": book_title, "error_type": type(e).__name__},
        )
        return StageResult.fallback(
            fallback_analysis(book_title, book_author, book_text),
            cause=f"{type(e).__name__}: {e}",
        )

    if not analysis.bookMetadata.title:
        analysis.bookMetadata.title = book_title
    if not analysis.bookMetadata.author and book_author:
        analysis.bookMetadata.author = book_author
    if not analysis.coreConcepts:
        logger.warning("Analysis returned no core concepts", extra={"book_title": book_title})
        analysis.coreConcepts.append(_generic_concept())

    logger.info(
        "Stage 0 analysis complete",
        extra={
            "book_title": book_title,
            "provider": generation.provider,
            "core_concepts": len(analysis.coreConcepts),
        },
    )
    return StageResult.ok(analysis)
