"""Proportional sampling of oversized prompts.

When a prompt exceeds the input ceiling we keep representative slices
instead of cutting the tail off. Text with recognizable chapter headings
gets an even budget per chapter; anything else is sampled from its
beginning, middle and end.
"""

import logging
import re

logger = logging.getLogger(__name__)

ELISION_MARKER = "\n\n[...]\n\n"
CHAPTER_SEPARATOR = "\n\n"

# Share of each chapter budget given to head / middle / tail
CHAPTER_SPLIT = (0.40, 0.30, 0.30)
# Share of the whole budget when no chapters are detected
WHOLE_TEXT_SPLIT = (0.35, 0.35, 0.30)

# Below this per-chapter budget, chapter sampling degrades to noise
MIN_CHAPTER_BUDGET = 600

_SPELLED_NUMBERS = (
    "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
    "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen", "seventeen",
    "eighteen", "nineteen", "twenty",
)
_ROMAN_NUMERAL = r"(?=[ivxl])l?x{0,3}(?:ix|iv|v?i{0,3})"

# Headings are short lines; "Part of the ..." prose must not match
MAX_HEADING_CHARS = 80

CHAPTER_HEADING = re.compile(
    r"^[ \t]*(?:#{1,3}[ \t]*)?(?:chapter|part)[ \t]+"
    r"(?:\d+|" + _ROMAN_NUMERAL + "|" + "|".join(_SPELLED_NUMBERS) + r")\b"
    r"(?=.{0,%d}$).*$" % MAX_HEADING_CHARS,
    re.IGNORECASE | re.MULTILINE,
)


def find_chapter_starts(text: str) -> list[int]:
    """Offsets of lines that look like chapter or part headings."""
    return [match.start() for match in CHAPTER_HEADING.finditer(text)]


def _split_chapters(text: str, starts: list[int]) -> list[str]:
    # Anything before the first heading rides along with chapter one
    bounds = [0] + starts[1:] + [len(text)]
    return [text[bounds[i]:bounds[i + 1]] for i in range(len(bounds) - 1)]


def _sample_span(text: str, budget: int, split: tuple[float, float, float]) -> str:
    """Keep head, middle and tail slices of `text` within `budget` chars."""
    if len(text) <= budget:
        return text

    usable = budget - 2 * len(ELISION_MARKER)
    if usable <= 0:
        return text[:budget]

    head_len = int(usable * split[0])
    middle_len = int(usable * split[1])
    tail_len = usable - head_len - middle_len

    middle_start = max(head_len, len(text) // 2 - middle_len // 2)
    head = text[:head_len]
    middle = text[middle_start:middle_start + middle_len]
    tail = text[len(text) - tail_len:] if tail_len > 0 else ""

    return head + ELISION_MARKER + middle + ELISION_MARKER + tail


def sample_text(text: str, max_chars: int) -> str:
    """Reduce `text` to at most `max_chars` characters.

    Text at or under the ceiling is returned unchanged.
    """
    if len(text) <= max_chars:
        return text

    starts = find_chapter_starts(text)
    if len(starts) >= 2:
        chapters = _split_chapters(text, starts)
        separators = (len(chapters) - 1) * len(CHAPTER_SEPARATOR)
        per_chapter = (max_chars - separators) // len(chapters)

        if per_chapter >= MIN_CHAPTER_BUDGET:
            sampled = CHAPTER_SEPARATOR.join(
                _sample_span(chapter.strip(), per_chapter, CHAPTER_SPLIT)
                for chapter in chapters
            )
            logger.debug(
                "Sampled text by chapter",
                extra={
                    "chapters": len(chapters),
                    "original_chars": len(text),
                    "sampled_chars": len(sampled),
                },
            )
            return sampled[:max_chars]

    sampled = _sample_span(text, max_chars, WHOLE_TEXT_SPLIT)
    logger.debug(
        "Sampled text from beginning, middle and end",
        extra={"original_chars": len(text), "sampled_chars": len(sampled)},
    )
    return sampled[:max_chars]
