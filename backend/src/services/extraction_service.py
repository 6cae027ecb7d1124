"""Text extraction for uploaded books (PDF, EPUB, TXT)."""

from __future__ import annotations

import io
import logging
import re
import tempfile
from pathlib import Path
from typing import Optional

import ebooklib
import pypdf
from bs4 import BeautifulSoup
from ebooklib import epub

from src.api.exceptions import ExtractionError, FileTooLargeError, InvalidFileTypeError
from src.models.book import (
    ALLOWED_EXTENSIONS,
    ALLOWED_MIME_TYPES,
    MAX_FILE_SIZE,
    ExtractedContent,
    FileType,
)
from src.models.insight import count_words

logger = logging.getLogger(__name__)

MAX_PDF_PAGES = 500
MAX_TITLE_CHARS = 200

_BLANK_LINES = re.compile(r"\n\s*\n\s*\n+")


def validate_upload(content_type: Optional[str], filename: str, file_size: int) -> FileType:
    """Check size and type of an upload.

    Returns:
        The detected file type.

    Raises:
        FileTooLargeError: If file exceeds MAX_FILE_SIZE.
        InvalidFileTypeError: If extension or MIME type is not allowed.
    """
    if file_size > MAX_FILE_SIZE:
        raise FileTooLargeError(file_size, MAX_FILE_SIZE)

    ext = Path(filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise InvalidFileTypeError(ext or filename, sorted(ALLOWED_EXTENSIONS))

    # Browsers send octet-stream for EPUB often enough to allow it
    if content_type and content_type not in ALLOWED_MIME_TYPES and content_type != "application/octet-stream":
        raise InvalidFileTypeError(content_type, sorted(ALLOWED_MIME_TYPES))

    return FileType(ext.lstrip("."))


def _title_from_filename(filename: str) -> str:
    return Path(filename).stem.replace("_", " ").replace("-", " ").strip() or "Untitled"


def _first_line(text: str) -> Optional[str]:
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line[:MAX_TITLE_CHARS]
    return None


def _html_to_text(markup: str) -> str:
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup(["script", "style", "nav", "svg"]):
        tag.decompose()
    body = soup.body or soup
    text = body.get_text(separator="\n")
    lines = [line.strip() for line in text.split("\n")]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def _extract_pdf(data: bytes, filename: str) -> ExtractedContent:
    reader = pypdf.PdfReader(io.BytesIO(data))
    pages = reader.pages[:MAX_PDF_PAGES]
    text = "\n\n".join((page.extract_text() or "").strip() for page in pages).strip()

    metadata = reader.metadata
    title = (metadata.title if metadata else None) or _first_line(text) or _title_from_filename(filename)
    author = metadata.author if metadata else None

    return ExtractedContent(
        title=title.strip(),
        author=author.strip() if author else None,
        text=text,
        wordCount=count_words(text),
        pageCount=len(reader.pages),
        fileType=FileType.PDF,
    )


def _dc_value(book: epub.EpubBook, name: str) -> Optional[str]:
    values = book.get_metadata("DC", name)
    if values and values[0][0]:
        return str(values[0][0]).strip()
    return None


def _read_epub(data: bytes) -> epub.EpubBook:
    # read_epub wants a path
    with tempfile.TemporaryDirectory() as tmp_dir:
        path = Path(tmp_dir) / "upload.epub"
        path.write_bytes(data)
        return epub.read_epub(str(path), options={"ignore_ncx": True})


def _extract_epub(data: bytes, filename: str) -> ExtractedContent:
    book = _read_epub(data)

    documents = []
    for idref, _linear in book.spine:
        item = book.get_item_with_id(idref)
        if item is not None and item.get_type() == ebooklib.ITEM_DOCUMENT:
            documents.append(item)
    if not documents:
        documents = list(book.get_items_of_type(ebooklib.ITEM_DOCUMENT))

    chapters = [_html_to_text(item.get_content().decode("utf-8", errors="replace")) for item in documents]
    text = "\n\n".join(chapter for chapter in chapters if chapter)

    return ExtractedContent(
        title=_dc_value(book, "title") or _title_from_filename(filename),
        author=_dc_value(book, "creator"),
        text=text,
        wordCount=count_words(text),
        pageCount=None,
        fileType=FileType.EPUB,
    )


def _extract_txt(data: bytes, filename: str) -> ExtractedContent:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    text = text.strip()

    return ExtractedContent(
        title=_first_line(text) or _title_from_filename(filename),
        author=None,
        text=text,
        wordCount=count_words(text),
        pageCount=None,
        fileType=FileType.TXT,
    )


_EXTRACTORS = {
    FileType.PDF: _extract_pdf,
    FileType.EPUB: _extract_epub,
    FileType.TXT: _extract_txt,
}


def extract_content(data: bytes, filename: str, mime_type: Optional[str] = None) -> ExtractedContent:
    """Extract text and metadata from an uploaded book.

    Raises:
        FileTooLargeError, InvalidFileTypeError: Upload rejected.
        ExtractionError: The file could not be read or holds no text.
    """
    file_type = validate_upload(mime_type, filename, len(data))

    try:
        content = _EXTRACTORS[file_type](data, filename)
    except Exception as e:
        logger.warning(
            "Extraction failed: %s",
            e,
            extra={"book_file": filename, "file_type": file_type.value},
        )
        raise ExtractionError(filename, str(e)) from e

    if not content.text.strip():
        raise ExtractionError(filename, "no text content found")

    logger.info(
        "Extracted book content",
        extra={
            "book_file": filename,
            "file_type": file_type.value,
            "word_count": content.wordCount,
            "page_count": content.pageCount,
        },
    )
    return content
