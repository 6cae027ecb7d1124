"""Backend models package.

Note: keep backend models as the source-of-truth schemas for OpenAPI + frontend types.
"""

from .book import (
    ALLOWED_EXTENSIONS,
    ALLOWED_MIME_TYPES,
    MAX_FILE_SIZE,
    AudioNarration,
    Book,
    BookSummary,
    ExtractedContent,
    FileType,
    GenerateInsightRequest,
    GenerateInsightResponse,
    Insight,
    InsightStatus,
)
from .insight import (
    BookAnalysis,
    CoreConcept,
    GapAnalysisResult,
    GapDimension,
    GeneratedInsight,
    PremiumGuide,
    PremiumSection,
    SectionType,
    StageResult,
    TocEntry,
    VisualType,
)
from .progress import ClientMessage, ProgressStatus, ProgressUpdate

__all__ = [
    # Books and records
    "ALLOWED_EXTENSIONS",
    "ALLOWED_MIME_TYPES",
    "MAX_FILE_SIZE",
    "AudioNarration",
    "Book",
    "BookSummary",
    "ExtractedContent",
    "FileType",
    "GenerateInsightRequest",
    "GenerateInsightResponse",
    "Insight",
    "InsightStatus",
    # Insight content
    "BookAnalysis",
    "CoreConcept",
    "GapAnalysisResult",
    "GapDimension",
    "GeneratedInsight",
    "PremiumGuide",
    "PremiumSection",
    "SectionType",
    "StageResult",
    "TocEntry",
    "VisualType",
    # Progress
    "ClientMessage",
    "ProgressStatus",
    "ProgressUpdate",
]
