"""Pydantic models for uploaded books and persisted insight records."""

import os
from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field

from .insight import GeneratedInsight


# File upload constraints
MAX_FILE_SIZE = int(os.environ.get("UPLOADS_MAX_BYTES", 50 * 1024 * 1024))  # 50MB
ALLOWED_EXTENSIONS = {".pdf", ".epub", ".txt"}
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/epub+zip",
    "text/plain",
}


class FileType(str, Enum):
    """Supported book formats."""

    PDF = "pdf"
    EPUB = "epub"
    TXT = "txt"


class ExtractedContent(BaseModel):
    """Text and metadata pulled out of an uploaded book."""

    title: str
    author: str | None = None
    text: str
    wordCount: Annotated[int, Field(ge=0)]
    pageCount: int | None = None
    fileType: FileType


class Book(BaseModel):
    """A stored book with its extracted text."""

    id: int
    title: str
    author: str | None = None
    fileName: str
    fileType: FileType
    wordCount: int
    pageCount: int | None = None
    text: str
    createdAt: datetime


class BookSummary(BaseModel):
    """Book as returned by the API (without the full text)."""

    id: int
    title: str
    author: str | None = None
    fileName: str
    fileType: FileType
    wordCount: int
    pageCount: int | None = None
    createdAt: datetime


class InsightStatus(str, Enum):
    """Lifecycle of a persisted insight record."""

    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class Insight(BaseModel):
    """Persisted insight record with progress scalars and final content."""

    id: int
    bookId: int
    status: InsightStatus
    generationProgress: Annotated[int, Field(ge=0, le=100)] = 0
    currentStage: str | None = None
    errorMessage: str | None = None
    content: GeneratedInsight | None = None
    createdAt: datetime
    updatedAt: datetime


# Request / response schemas
class GenerateInsightRequest(BaseModel):
    """Request body for starting insight generation."""

    bookId: int


class GenerateInsightResponse(BaseModel):
    """Returned immediately when generation starts."""

    insightId: int
    status: InsightStatus


class AudioNarration(BaseModel):
    """Result of speech synthesis."""

    audioUrl: str
    durationEstimateSeconds: int
