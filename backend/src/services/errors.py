"""Pipeline error types.

Hard failures of the insight pipeline. Soft failures never raise; they
come back as degraded StageResults instead.
"""

from typing import Optional, Sequence


class PipelineError(Exception):
    """Base exception for unrecoverable pipeline failures."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage


class ContentValidationError(PipelineError):
    """Assembled guide is below the word, section or required-type minimums."""

    def __init__(
        self,
        message: str,
        word_count: int,
        section_count: int,
        missing_types: Sequence[str] = (),
    ):
        super().__init__(message, stage="generating")
        self.word_count = word_count
        self.section_count = section_count
        self.missing_types = list(missing_types)


class ChunkGenerationError(PipelineError):
    """A generation chunk failed or returned unparseable JSON."""

    def __init__(self, message: str, chunk: str):
        super().__init__(message, stage="generating")
        self.chunk = chunk
