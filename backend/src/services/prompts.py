"""Prompt templates for insight generation.

Contains system and user prompts for:
1. Book analysis (Stage 0)
2. Chunked guide generation (Foundation, Core Concepts, Application)
3. Gap analysis and backfill
4. Audio narration script
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from src.models.insight import BookAnalysis, GapDimension, PremiumSection, SectionType, VisualType

VISUAL_TYPE_NAMES = ", ".join(v.value for v in VisualType)


# ==============================================================================
# Stage 0: Book Analysis
# ==============================================================================

ANALYSIS_SYSTEM_PROMPT = f"""You are a book classification and analysis specialist. You prepare books for synthesis into premium study guides by identifying their structure, core concepts, tone and the best way to visualize each idea.

Available visual types: {VISUAL_TYPE_NAMES}.

Choose the visual type that best conveys what each concept is trying to say.
Respond with a single JSON object and nothing else."""

ANALYSIS_OUTPUT_SHAPE = """{
  "bookMetadata": {"title": "", "author": "", "publicationYear": "", "wordCountEstimate": ""},
  "classification": {"primaryCategory": "", "secondaryCategories": [], "complexityLevel": "Accessible|Intermediate|Advanced", "frameworkType": ""},
  "originStory": {"present": false, "location": "", "description": "", "narrativeTone": ""},
  "structure": {"totalChapters": 0, "chapterTitles": [], "logicalGroupings": [], "chaptersStandaloneOrSequential": ""},
  "coreConcepts": [
    {"conceptName": "", "chapterSource": "", "briefDescription": "", "recommendedVisual": "flowDiagram", "visualRationale": "", "exampleDomains": []}
  ],
  "crossReferences": {"psychologicalFrameworks": [], "philosophicalTraditions": [], "neuroscienceResearch": [], "relatedPopularWorks": []},
  "toneAnalysis": {"authorVoice": "", "recommendedGuideTone": "", "toneNotes": ""},
  "generationRecommendations": {"emphasisAreas": [], "potentialChallenges": [], "uniqueValueOpportunities": []}
}"""


def build_analysis_user_prompt(
    book_title: str,
    book_author: Optional[str],
    book_text: str,
) -> str:
    """Build user prompt for Stage 0 analysis.

    Args:
        book_title: Title as known from extraction.
        book_author: Author if known.
        book_text: Already-truncated book text.

    Returns:
        Formatted user prompt string.
    """
    return f"""# BOOK ANALYSIS & CLASSIFICATION

Book: "{book_title}" by {book_author or "Unknown"}

Tasks:
1. Classify the book (primary/secondary category, complexity level, framework type: principle-, process-, model-, argument- or story-based, or mixed).
2. Detect an origin story: opening narrative, parable, founding myth or the author's framing story.
3. Summarize the chapter structure.
4. List the core concepts in order of importance, each with its source chapter, a brief description, one recommended visual type and why it fits, and domains where it applies.
5. Identify cross-references to psychological frameworks, philosophical traditions, neuroscience research and related popular works.
6. Describe the author's voice and recommend a tone for the guide.
7. Recommend emphasis areas, potential challenges and unique value opportunities.

Return JSON with exactly this structure:
{ANALYSIS_OUTPUT_SHAPE}

## BOOK TEXT

{book_text}

---

Analyze this book and return the JSON analysis."""


# ==============================================================================
# Stage 1: Chunked Generation
# ==============================================================================

def build_chunk_system_prompt(target_words: int, section_types: Sequence[SectionType]) -> str:
    """System prompt shared by all three chunks."""
    type_names = ", ".join(t.value for t in section_types)
    return f"""You are an Insight Atlas synthesizer generating premium book guide content.
Output ONLY valid JSON with this structure:
{{
  "sections": [
    {{
      "type": "sectionType",
      "title": "Section Title",
      "content": "Full markdown content...",
      "visualType": "optional visual type",
      "visualData": {{}},
      "metadata": {{}}
    }}
  ]
}}

Target {target_words} words across {type_names} sections.
Valid visual types: {VISUAL_TYPE_NAMES}.
actionBox sections list their steps in metadata.actionSteps.
insightAtlasNote sections fill metadata.keyDistinction, metadata.practicalImplication and metadata.goDeeper {{title, author, benefit}}.
Use rich markdown formatting, practical examples and actionable insights."""


def build_foundation_prompt(analysis: BookAnalysis, excerpt: str) -> str:
    meta = analysis.bookMetadata
    return f"""Generate the foundation sections for "{meta.title}" by {meta.author or "Unknown"}.

**Book Analysis:**
{analysis.model_dump_json(indent=2)}

**Book Excerpt:**
{excerpt}

Generate these sections (target 3,000 words total):
1. quickGlance: Quick Glance Summary (500-600 words) with premise, core principles and bottom line
2. foundationalNarrative: Foundational Narrative (1,200-1,500 words) telling the origin story or the author's context
3. executiveSummary: Executive Summary (1,200-1,500 words)

Focus on clarity, structure and immediate value."""


def build_core_concepts_prompt(analysis: BookAnalysis, excerpt: str, concept_limit: int = 5) -> str:
    concepts = analysis.top_concepts(concept_limit)
    concept_lines = "\n".join(
        f"- {c.conceptName} (visual: {c.recommendedVisual.value}): {c.briefDescription}"
        for c in concepts
    )
    return f"""Generate core concept sections for "{analysis.bookMetadata.title}".

**Core Concepts:**
{concept_lines}

**Book Excerpt:**
{excerpt}

For EACH of the {len(concepts)} concepts, generate (target 4,000 words total):
1. conceptExplanation (400-500 words)
2. practicalExample (300-400 words) with a named person in a concrete setting
3. insightAtlasNote (200-300 words) connecting it to another framework
4. actionBox with 5-7 specific, imperative steps
5. visualFramework using the concept's visual type, with visualData for rendering

Make it practical, memorable and immediately applicable."""


def build_application_prompt(
    analysis: BookAnalysis,
    excerpt: str,
    existing_sections: List[PremiumSection],
) -> str:
    digest = "\n".join(f"- {s.type.value}: {s.title}" for s in existing_sections)
    return f"""Generate application and structure sections for "{analysis.bookMetadata.title}".

**Existing Sections (do not repeat them):**
{digest}

**Book Excerpt:**
{excerpt}

Generate these sections (target 3,000 words total):
1. selfAssessment (600-800 words) with radarChart visualType and dimensions in visualData
2. trackingTemplate (600-800 words) with an appropriate visual
3. structureMap (400-500 words) mapping book chapters to guide sections
4. keyTakeaways (800-1,000 words)

Tie everything together and provide clear next steps."""


# ==============================================================================
# Gap Analysis
# ==============================================================================

GAP_ANALYSIS_SYSTEM_PROMPT = (
    "You are a content completion specialist. Analyze the generated guide against "
    "the completeness rubric and fill any gaps. Return valid JSON only."
)

GAP_DIMENSION_CHECKLIST = {
    GapDimension.quickGlance: "Quick glance summary: read time, premise, framework overview, numbered core principles, bottom line, who should read it.",
    GapDimension.foundationalNarrative: "Foundational narrative: 300-500 words of storytelling with origin story or author background and historical context.",
    GapDimension.practicalExamples: "Practical examples: 3-4 specific, named, contemporary examples per major concept showing problem and solution.",
    GapDimension.insightAtlasNotes: "Insight Atlas notes: a cross-reference per concept with key distinction, practical implication and a go-deeper book.",
    GapDimension.visualFrameworks: "Visual frameworks: at least one visual per major concept.",
    GapDimension.actionBoxes: "Action boxes: one per major concept, 3-5 imperative, immediately doable steps.",
    GapDimension.enhancedExercises: "Enhanced exercises: reflection prompts, self-assessment scales, scenario responses, tracking templates, dialogue scripts.",
    GapDimension.structureMap: "Structure map: appendix mapping book chapters to guide sections.",
    GapDimension.toneCheck: "Tone: warm, direct second person with transitions and rhetorical questions.",
}


def build_gap_analysis_prompt(
    guide_text: str,
    book_title: str,
    book_author: Optional[str],
    book_excerpts: str,
) -> str:
    checklist = "\n".join(
        f"{i}. [{dim.value}] {text}"
        for i, (dim, text) in enumerate(GAP_DIMENSION_CHECKLIST.items(), start=1)
    )
    section_types = ", ".join(t.value for t in SectionType)
    return f"""# GAP ANALYSIS & CONTENT COMPLETION

## THE GENERATED GUIDE TO ANALYZE
{guide_text}

## THE SOURCE BOOK
Title: {book_title}
Author: {book_author or "Unknown"}

## KEY EXCERPTS FROM SOURCE
{book_excerpts}

---

## CHECK ALL 9 DIMENSIONS
{checklist}

For every dimension that is missing or inadequate, generate new publication-ready sections that fill exactly that gap. Do not rewrite sections that already cover a dimension.

## OUTPUT FORMAT
{{
  "gapsFound": ["dimension names that were missing"],
  "generatedContent": [
    {{"type": "one of: {section_types}", "title": "", "content": "", "visualType": "", "visualData": {{}}, "metadata": {{}}}}
  ],
  "completenessScore": 0
}}

completenessScore is 0-100 for the guide before your additions. Return ONLY valid JSON."""


# ==============================================================================
# Audio Script
# ==============================================================================

AUDIO_SCRIPT_SYSTEM_PROMPT = """You are a skilled narrator creating a spoken audio summary of a book insight guide.
Your narration should:
- Sound natural and conversational when read aloud
- Be 500-1000 words
- Open with an engaging hook and end with a memorable closing takeaway
- Convey the actual insights, never describe visual elements ("as shown in the chart"); say what the visuals mean instead
- Contain plain spoken text only: no markdown, headings or stage directions"""


def build_audio_script_prompt(
    book_title: str,
    book_author: str,
    guide_title: str,
    analysis: BookAnalysis,
    content_digest: str,
) -> str:
    refs = analysis.crossReferences
    themes = ", ".join(c.conceptName for c in analysis.coreConcepts)
    return f"""Create an engaging audio narration for this insight guide:

Book: "{book_title}" by {book_author}
Guide Title: {guide_title}

Key Themes: {themes}

Content Summary:
{content_digest}

Cross-References:
- Psychology: {", ".join(refs.psychologicalFrameworks)}
- Philosophy: {", ".join(refs.philosophicalTraditions)}

Generate a compelling narration that brings these insights to life."""
