"""Gap analysis and backfill.

Checks the assembled guide against the 9-dimension completeness rubric
and generates sections for the dimensions found missing. The merge is
purely additive: nothing already in the guide is removed or replaced.

Gap analysis is an enhancement. Any failure leaves the guide unchanged
with a completeness score of 100 and a degraded StageResult.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from src.llm import LLMClient, get_client
from src.models.insight import GapAnalysisResult, PremiumSection, StageResult
from src.services.prompts import GAP_ANALYSIS_SYSTEM_PROMPT, build_gap_analysis_prompt
from src.services.response_parsing import parse_json_object_with_repair
from src.services.section_normalizer import normalize_sections, renumber_sections

logger = logging.getLogger(__name__)

GAP_MAX_TOKENS = 16000
GAP_EXCERPT_CHARS = 15_000
SECTION_SEPARATOR = "\n\n---\n\n"


def serialize_sections_for_review(sections: List[PremiumSection]) -> str:
    """Render sections as one markdown-like document for the rubric check."""
    parts = []
    for section in sections:
        text = f"## {section.title}\n\n{section.content}"
        if section.action_steps:
            text += "\n\nAction Steps:\n" + "\n".join(section.action_steps)
        parts.append(text)
    return SECTION_SEPARATOR.join(parts)


def _coerce_score(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


def _parse_gap_payload(payload: dict) -> GapAnalysisResult:
    gaps = payload.get("gapsFound")
    raw_sections = payload.get("generatedContent")
    return GapAnalysisResult(
        gapsFound=[str(g) for g in gaps] if isinstance(gaps, list) else [],
        completenessScore=_coerce_score(payload.get("completenessScore")),
        generatedSections=normalize_sections(
            raw_sections if isinstance(raw_sections, list) else [],
            id_prefix="gap",
        ),
    )


async def run_gap_analysis(
    sections: List[PremiumSection],
    book_title: str,
    book_author: Optional[str],
    book_excerpts: str,
    client: Optional[LLMClient] = None,
) -> StageResult[GapAnalysisResult]:
    """Identify missing rubric dimensions and generate sections for them.

    Args:
        sections: The assembled guide sections.
        book_title: Source book title.
        book_author: Source book author.
        book_excerpts: Bounded excerpt of the source text.
        client: LLM client override.

    Returns:
        StageResult whose value is always usable; degraded on failure.
    """
    client = client or get_client()
    prompt = build_gap_analysis_prompt(
        serialize_sections_for_review(sections),
        book_title,
        book_author,
        book_excerpts[:GAP_EXCERPT_CHARS],
    )

    try:
        generation = await client.generate(
            system_prompt=GAP_ANALYSIS_SYSTEM_PROMPT,
            user_prompt=prompt,
            max_tokens=GAP_MAX_TOKENS,
        )
        result = _parse_gap_payload(parse_json_object_with_repair(generation.content))
    except Exception as e:
        logger.warning(
            "Gap analysis failed, keeping guide unchanged: %s",
            e,
            extra={"book_title": book_title, "error_type": type(e).__name__},
        )
        return StageResult.fallback(
            GapAnalysisResult(completenessScore=100),
            cause=f"{type(e).__name__}: {e}",
        )

    logger.info(
        "Gap analysis complete",
        extra={
            "book_title": book_title,
            "gaps_found": len(result.gapsFound),
            "generated_sections": len(result.generatedSections),
            "completeness_score": result.completenessScore,
            "provider": generation.provider,
        },
    )
    return StageResult.ok(result)


def merge_gap_sections(
    original: List[PremiumSection],
    gap_filled: List[PremiumSection],
) -> List[PremiumSection]:
    """Append gap-filled sections after the original ones.

    Always yields len(original) + len(gap_filled) sections, ids renumbered.
    """
    return renumber_sections(list(original) + list(gap_filled))
