"""Audio narration script.

Condenses the guide into a compact digest (first ten excerpts keyed by
section type) and asks the LLM for a 500-1000 word spoken script. Never
raises: failures return a short generic narration marked degraded.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from src.llm import LLMClient, get_client
from src.models.insight import BookAnalysis, PremiumSection, SectionType, StageResult
from src.services.prompts import AUDIO_SCRIPT_SYSTEM_PROMPT, build_audio_script_prompt

logger = logging.getLogger(__name__)

AUDIO_SCRIPT_MAX_TOKENS = 2000
MAX_DIGEST_PARTS = 10


def fallback_script(book_title: str, book_author: str) -> str:
    return (
        f'Welcome to your Insight Atlas guide for "{book_title}" by {book_author}. '
        "This comprehensive analysis reveals the key insights and practical wisdom "
        "from this transformative work."
    )


def _excerpt(section: PremiumSection) -> Optional[str]:
    content = section.content
    if section.type == SectionType.quickGlance:
        return f"Quick Summary: {content[:500]}"
    if section.type == SectionType.foundationalNarrative:
        return f"Origin Story: {content[:500]}"
    if section.type == SectionType.conceptExplanation:
        return f"Key Concept - {section.title}: {content[:300]}"
    if section.type == SectionType.actionBox and section.action_steps:
        return f"Action Steps for {section.title}: {'. '.join(section.action_steps[:3])}"
    if section.type == SectionType.practicalExample:
        return f"Example - {section.title}: {content[:200]}"
    if section.type == SectionType.insightAtlasNote:
        return f"Insight Note - {section.title}: {content[:200]}"
    return None


def build_content_digest(sections: List[PremiumSection], limit: int = MAX_DIGEST_PARTS) -> str:
    """Short excerpts of the narratable sections, at most `limit` of them."""
    parts = []
    for section in sections:
        excerpt = _excerpt(section)
        if excerpt:
            parts.append(excerpt)
        if len(parts) >= limit:
            break
    return "\n\n".join(parts)


async def generate_audio_script(
    guide_title: str,
    book_title: str,
    book_author: str,
    sections: List[PremiumSection],
    analysis: BookAnalysis,
    client: Optional[LLMClient] = None,
) -> StageResult[str]:
    client = client or get_client()
    prompt = build_audio_script_prompt(
        book_title,
        book_author,
        guide_title,
        analysis,
        build_content_digest(sections),
    )

    try:
        generation = await client.generate(
            system_prompt=AUDIO_SCRIPT_SYSTEM_PROMPT,
            user_prompt=prompt,
            max_tokens=AUDIO_SCRIPT_MAX_TOKENS,
        )
    except Exception as e:
        logger.warning(
            "Audio script generation failed, using generic narration: %s",
            e,
            extra={"book_title": book_title, "error_type": type(e).__name__},
        )
        return StageResult.fallback(
            fallback_script(book_title, book_author),
            cause=f"{type(e).__name__}: {e}",
        )

    script = generation.content.strip()
    logger.info(
        "Audio script generated",
        extra={"book_title": book_title, "script_chars": len(script), "provider": generation.provider},
    )
    return StageResult.ok(script)
