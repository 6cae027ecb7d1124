"""Validation of raw LLM section payloads into PremiumSection models.

Raw dicts come straight from parsed JSON. Each one is mapped onto the
closed section-type set (through an alias table), checked for a title and
content, and given a metadata bag that keeps any unrecognized keys.
Sections that cannot be salvaged are dropped with a warning.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional

from pydantic import ValidationError

from src.models.insight import PremiumSection, SectionMetadata, SectionType

logger = logging.getLogger(__name__)

# Section type names the model uses that are not in the enumeration
SECTION_TYPE_ALIASES = {
    "exercise": SectionType.reflectionPrompts,
    "exercises": SectionType.reflectionPrompts,
    "reflection": SectionType.reflectionPrompts,
    "journalPrompts": SectionType.reflectionPrompts,
    "toneInsertion": SectionType.insightAtlasNote,
    "insightNote": SectionType.insightAtlasNote,
    "note": SectionType.insightAtlasNote,
    "example": SectionType.practicalExample,
    "examples": SectionType.practicalExample,
    "visual": SectionType.visualFramework,
    "actionSteps": SectionType.actionBox,
    "assessment": SectionType.selfAssessment,
    "takeaways": SectionType.keyTakeaways,
    "summary": SectionType.executiveSummary,
    "narrative": SectionType.foundationalNarrative,
    "dialogue": SectionType.dialogueScript,
    "scenario": SectionType.scenarioResponse,
}

_CORE_KEYS = {"id", "type", "title", "content", "visualType", "visualData", "metadata"}
_LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(.+?)\s*$", re.MULTILINE)


def resolve_section_type(value: Any) -> Optional[SectionType]:
    if not isinstance(value, str):
        return None
    try:
        return SectionType(value)
    except ValueError:
        return SECTION_TYPE_ALIASES.get(value)


def extract_list_items(content: str) -> List[str]:
    """Numbered or bulleted lines of a markdown body."""
    return [item for item in _LIST_ITEM.findall(content) if item]


def _as_string_list(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        items = extract_list_items(value) or [line.strip() for line in value.splitlines()]
        return [item for item in items if item]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


def _build_metadata(raw: dict) -> dict:
    metadata = dict(raw["metadata"]) if isinstance(raw.get("metadata"), dict) else {}

    # Keys outside the section shape (insertAfter, actionSteps, ...) go to the bag
    for key, value in raw.items():
        if key not in _CORE_KEYS and key not in metadata:
            metadata[key] = value

    for key in ("actionSteps", "crossReferences"):
        if key in metadata:
            metadata[key] = _as_string_list(metadata[key])

    go_deeper = metadata.get("goDeeper")
    if isinstance(go_deeper, str):
        metadata["goDeeper"] = {"title": go_deeper}
    elif go_deeper is not None and not isinstance(go_deeper, dict):
        metadata.pop("goDeeper")

    return metadata


def normalize_section(raw: Any, section_id: str) -> Optional[PremiumSection]:
    """Validate one raw section. Returns None when it must be dropped."""
    if not isinstance(raw, dict):
        logger.warning("Dropping non-object section", extra={"section_id": section_id})
        return None

    section_type = resolve_section_type(raw.get("type"))
    if section_type is None:
        logger.warning(
            "Dropping section with unknown type %r",
            raw.get("type"),
            extra={"section_id": section_id},
        )
        return None

    title = raw.get("title")
    content = raw.get("content")
    if isinstance(content, list):
        content = "\n".join(str(part) for part in content)
    if not isinstance(title, str) or not title.strip() or not isinstance(content, str) or not content.strip():
        logger.warning(
            "Dropping %s section without title or content",
            section_type.value,
            extra={"section_id": section_id},
        )
        return None

    metadata = _build_metadata(raw)
    if section_type == SectionType.actionBox and not metadata.get("actionSteps"):
        recovered = extract_list_items(content)
        if recovered:
            metadata["actionSteps"] = recovered

    try:
        section_metadata = SectionMetadata.model_validate(metadata) if metadata else None
    except ValidationError as e:
        logger.warning(
            "Discarding malformed section metadata: %s",
            e.errors()[0].get("msg", str(e)),
            extra={"section_id": section_id},
        )
        steps = metadata.get("actionSteps")
        section_metadata = SectionMetadata(actionSteps=steps) if steps else None

    visual_data = raw.get("visualData")
    return PremiumSection(
        id=section_id,
        type=section_type,
        title=title.strip(),
        content=content.strip(),
        visualType=raw.get("visualType"),
        visualData=visual_data if isinstance(visual_data, dict) else None,
        metadata=section_metadata,
    )


def normalize_sections(raw_sections: Iterable[Any], id_prefix: str) -> List[PremiumSection]:
    """Validate a batch of raw sections, dropping the unusable ones."""
    sections = []
    for index, raw in enumerate(raw_sections, start=1):
        section = normalize_section(raw, f"{id_prefix}-{index}")
        if section is not None:
            sections.append(section)
    return sections


def renumber_sections(sections: List[PremiumSection]) -> List[PremiumSection]:
    """Reassign ids `section-{n}` in document order."""
    return [
        section.model_copy(update={"id": f"section-{index}"})
        for index, section in enumerate(sections, start=1)
    ]
