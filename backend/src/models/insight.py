"""Pydantic models for book analysis, guide sections and generated insights.

Field names follow the wire format consumed by the frontend (camelCase),
the same way the project models do. LLM payloads are validated into these
models right after parsing; see services/section_normalizer.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


def count_words(text: Optional[str]) -> int:
    """Whitespace-delimited word count."""
    if not text:
        return 0
    return len(text.split())


class VisualType(str, Enum):
    """Visual representations a concept or section can recommend."""

    timeline = "timeline"
    flowDiagram = "flowDiagram"
    comparisonMatrix = "comparisonMatrix"
    pieChart = "pieChart"
    barChart = "barChart"
    infographic = "infographic"
    mindMap = "mindMap"
    hierarchy = "hierarchy"
    networkGraph = "networkGraph"
    vennDiagram = "vennDiagram"
    scatterPlot = "scatterPlot"
    heatMap = "heatMap"
    treemap = "treemap"
    sunburst = "sunburst"
    sankey = "sankey"
    wordCloud = "wordCloud"
    radarChart = "radarChart"
    gaugeChart = "gaugeChart"
    funnelChart = "funnelChart"
    waterfallChart = "waterfallChart"
    areaChart = "areaChart"
    bubbleChart = "bubbleChart"
    donutChart = "donutChart"
    stackedBar = "stackedBar"
    lineChart = "lineChart"
    candlestick = "candlestick"
    boxPlot = "boxPlot"
    histogram = "histogram"
    parallelCoordinates = "parallelCoordinates"
    chordDiagram = "chordDiagram"
    forceDirectedGraph = "forceDirectedGraph"
    circularPacking = "circularPacking"
    icicle = "icicle"
    partition = "partition"


DEFAULT_VISUAL_TYPE = VisualType.flowDiagram

# Names models tend to use for visuals that exist under another name
VISUAL_TYPE_ALIASES = {
    "flowChart": VisualType.flowDiagram,
    "flowchart": VisualType.flowDiagram,
    "comparisonTable": VisualType.comparisonMatrix,
    "conceptMap": VisualType.mindMap,
}


def coerce_visual_type(value: Any) -> Optional[VisualType]:
    """Map any visual type value onto the enumeration.

    None and empty strings stay None; unknown names become flowDiagram.
    """
    if value is None or value == "":
        return None
    if isinstance(value, VisualType):
        return value
    if isinstance(value, str):
        if value in VISUAL_TYPE_ALIASES:
            return VISUAL_TYPE_ALIASES[value]
        try:
            return VisualType(value)
        except ValueError:
            pass
    return DEFAULT_VISUAL_TYPE


class SectionType(str, Enum):
    """Closed set of guide section types."""

    quickGlance = "quickGlance"
    foundationalNarrative = "foundationalNarrative"
    executiveSummary = "executiveSummary"
    conceptExplanation = "conceptExplanation"
    practicalExample = "practicalExample"
    insightAtlasNote = "insightAtlasNote"
    visualFramework = "visualFramework"
    actionBox = "actionBox"
    selfAssessment = "selfAssessment"
    trackingTemplate = "trackingTemplate"
    dialogueScript = "dialogueScript"
    reflectionPrompts = "reflectionPrompts"
    scenarioResponse = "scenarioResponse"
    structureMap = "structureMap"
    keyTakeaways = "keyTakeaways"
    chapterBreakdown = "chapterBreakdown"


REQUIRED_SECTION_TYPES = (
    SectionType.quickGlance,
    SectionType.foundationalNarrative,
    SectionType.executiveSummary,
)


class GapDimension(str, Enum):
    """The 9-dimension completeness rubric used by gap analysis."""

    quickGlance = "quickGlance"
    foundationalNarrative = "foundationalNarrative"
    practicalExamples = "practicalExamples"
    insightAtlasNotes = "insightAtlasNotes"
    visualFrameworks = "visualFrameworks"
    actionBoxes = "actionBoxes"
    enhancedExercises = "enhancedExercises"
    structureMap = "structureMap"
    toneCheck = "toneCheck"


# =============================================================================
# Stage 0: Book analysis
# =============================================================================

class _AnalysisModel(BaseModel):
    """LLM-produced analysis blocks: tolerate extra keys and numeric strings."""
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class BookMetadata(_AnalysisModel):
    title: str = ""
    author: str = ""
    publicationYear: str = ""
    wordCountEstimate: str = ""


class Classification(_AnalysisModel):
    primaryCategory: str = ""
    secondaryCategories: List[str] = Field(default_factory=list)
    complexityLevel: str = ""
    frameworkType: str = ""


class OriginStory(_AnalysisModel):
    present: bool = False
    location: str = ""
    description: str = ""
    narrativeTone: str = ""


class BookStructure(_AnalysisModel):
    totalChapters: int = 0
    chapterTitles: List[str] = Field(default_factory=list)
    logicalGroupings: List[str] = Field(default_factory=list)
    chaptersStandaloneOrSequential: str = ""


class CoreConcept(_AnalysisModel):
    """A major idea of the book mapped to one visual representation."""

    conceptName: str = Field(min_length=1)
    chapterSource: str = ""
    briefDescription: str = ""
    recommendedVisual: VisualType = DEFAULT_VISUAL_TYPE
    visualRationale: str = ""
    exampleDomains: List[str] = Field(default_factory=list)

    @field_validator("recommendedVisual", mode="before")
    @classmethod
    def _coerce_visual(cls, value: Any) -> VisualType:
        return coerce_visual_type(value) or DEFAULT_VISUAL_TYPE


class CrossReferences(_AnalysisModel):
    psychologicalFrameworks: List[str] = Field(default_factory=list)
    philosophicalTraditions: List[str] = Field(default_factory=list)
    neuroscienceResearch: List[str] = Field(default_factory=list)
    relatedPopularWorks: List[str] = Field(default_factory=list)


class ToneAnalysis(_AnalysisModel):
    authorVoice: str = ""
    recommendedGuideTone: str = ""
    toneNotes: str = ""


class GenerationRecommendations(_AnalysisModel):
    emphasisAreas: List[str] = Field(default_factory=list)
    potentialChallenges: List[str] = Field(default_factory=list)
    uniqueValueOpportunities: List[str] = Field(default_factory=list)


class BookAnalysis(_AnalysisModel):
    """Output of Stage 0, shared read-only by every later stage."""

    bookMetadata: BookMetadata = Field(default_factory=BookMetadata)
    classification: Classification = Field(default_factory=Classification)
    originStory: Optional[OriginStory] = None
    structure: BookStructure = Field(default_factory=BookStructure)
    coreConcepts: List[CoreConcept] = Field(default_factory=list)
    crossReferences: CrossReferences = Field(default_factory=CrossReferences)
    toneAnalysis: ToneAnalysis = Field(default_factory=ToneAnalysis)
    generationRecommendations: GenerationRecommendations = Field(
        default_factory=GenerationRecommendations
    )

    def top_concepts(self, limit: int = 5) -> List[CoreConcept]:
        return self.coreConcepts[:limit]


# =============================================================================
# Sections and guides
# =============================================================================

class GoDeeper(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = ""
    author: str = ""
    benefit: str = ""


class SectionMetadata(BaseModel):
    """Optional per-section metadata.

    Unknown keys from the model are kept as extras instead of being
    promoted to first-class fields.
    """
    model_config = ConfigDict(extra="allow")

    conceptName: Optional[str] = None
    chapterSource: Optional[str] = None
    crossReferences: Optional[List[str]] = None
    actionSteps: Optional[List[str]] = None
    keyDistinction: Optional[str] = None
    practicalImplication: Optional[str] = None
    goDeeper: Optional[GoDeeper] = None


class PremiumSection(BaseModel):
    """The atomic typed content unit of a guide."""
    model_config = ConfigDict(extra="forbid")

    id: str
    type: SectionType
    title: str = Field(min_length=1)
    content: str
    visualType: Optional[VisualType] = None
    visualData: Optional[Dict[str, Any]] = None
    metadata: Optional[SectionMetadata] = None

    @field_validator("visualType", mode="before")
    @classmethod
    def _coerce_visual(cls, value: Any) -> Optional[VisualType]:
        return coerce_visual_type(value)

    @property
    def action_steps(self) -> List[str]:
        if self.metadata and self.metadata.actionSteps:
            return self.metadata.actionSteps
        return []

    def content_word_count(self) -> int:
        return count_words(self.content)

    def word_count(self) -> int:
        """Words in the content plus action steps not already listed in it."""
        extra_steps = [step for step in self.action_steps if step not in self.content]
        return self.content_word_count() + count_words(" ".join(extra_steps))


class TocEntry(BaseModel):
    id: str
    title: str
    type: SectionType


def total_word_count(sections: List[PremiumSection]) -> int:
    return sum(section.word_count() for section in sections)


def total_content_words(sections: List[PremiumSection]) -> int:
    return sum(section.content_word_count() for section in sections)


def build_table_of_contents(sections: List[PremiumSection]) -> List[TocEntry]:
    """One entry per section, in document order."""
    return [TocEntry(id=s.id, title=s.title, type=s.type) for s in sections]


class PremiumGuide(BaseModel):
    """Assembled guide: ordered sections plus derived totals."""

    title: str
    bookTitle: str
    bookAuthor: str
    generatedAt: datetime = Field(default_factory=_utcnow)
    wordCount: int = Field(ge=0)
    sections: List[PremiumSection]
    tableOfContents: List[TocEntry]

    @classmethod
    def assemble(
        cls,
        title: str,
        book_title: str,
        book_author: str,
        sections: List[PremiumSection],
    ) -> "PremiumGuide":
        return cls(
            title=title,
            bookTitle=book_title,
            bookAuthor=book_author,
            wordCount=total_word_count(sections),
            sections=sections,
            tableOfContents=build_table_of_contents(sections),
        )


class GapAnalysisResult(BaseModel):
    """Missing rubric dimensions plus sections generated to fill them."""

    gapsFound: List[str] = Field(default_factory=list)
    completenessScore: int = Field(default=100, ge=0, le=100)
    generatedSections: List[PremiumSection] = Field(default_factory=list)


class GeneratedInsight(BaseModel):
    """Final aggregate returned by the pipeline."""

    title: str
    summary: str
    keyThemes: List[str]
    sections: List[PremiumSection]
    tableOfContents: List[TocEntry]
    audioScript: str
    audioUrl: Optional[str] = None
    audioDuration: Optional[int] = None
    wordCount: int = Field(ge=0)
    bookAnalysis: BookAnalysis
    gapAnalysisApplied: bool
    completenessScore: int = Field(ge=0, le=100)
    degradedStages: List[str] = Field(default_factory=list)


# =============================================================================
# Soft-failure results
# =============================================================================

T = TypeVar("T")


@dataclass
class StageResult(Generic[T]):
    """Value of a stage that may have substituted a fallback.

    `degraded` is True when `value` is a fallback rather than model output;
    `cause` then describes what went wrong.
    """

    value: T
    degraded: bool = False
    cause: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def fallback(cls, value: T, cause: str) -> "StageResult[T]":
        return cls(value=value, degraded=True, cause=cause)
