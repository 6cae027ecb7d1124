"""Custom exception classes for the API."""


class BookNotFoundError(Exception):
    """Raised when a book is not found."""

    def __init__(self, book_id: int):
        self.book_id = book_id
        super().__init__(f"Book with ID '{book_id}' not found")


class InsightNotFoundError(Exception):
    """Raised when an insight is not found."""

    def __init__(self, insight_id: int):
        self.insight_id = insight_id
        super().__init__(f"Insight with ID '{insight_id}' not found")


class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class FileTooLargeError(Exception):
    """Raised when an uploaded file exceeds the maximum size limit."""

    def __init__(self, file_size: int, max_size: int):
        self.file_size = file_size
        self.max_size = max_size
        super().__init__(
            f"File size ({file_size} bytes) exceeds maximum allowed size ({max_size} bytes)"
        )


class InvalidFileTypeError(Exception):
    """Raised when an uploaded file has an unsupported type."""

    def __init__(self, file_type: str, allowed_types: list[str]):
        self.file_type = file_type
        self.allowed_types = allowed_types
        super().__init__(
            f"File type '{file_type}' is not supported. "
            f"Allowed types: {', '.join(allowed_types)}"
        )


class ExtractionError(Exception):
    """Raised when no usable text can be extracted from an upload."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Could not extract text from '{filename}': {reason}")
