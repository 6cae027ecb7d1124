"""Book service for business logic."""

from datetime import UTC, datetime

from src.api.exceptions import BookNotFoundError
from src.db.mongo import get_database, next_sequence
from src.models.book import Book, BookSummary, ExtractedContent, FileType

COLLECTION_NAME = "books"


def _to_book(doc: dict) -> Book:
    """Convert MongoDB document to Book model."""
    return Book(
        id=doc["_id"],
        title=doc["title"],
        author=doc.get("author"),
        fileName=doc["fileName"],
        fileType=FileType(doc["fileType"]),
        wordCount=doc.get("wordCount", 0),
        pageCount=doc.get("pageCount"),
        text=doc.get("text", ""),
        createdAt=doc["createdAt"],
    )


def to_summary(book: Book) -> BookSummary:
    """Drop the full text for API responses."""
    return BookSummary(**book.model_dump(exclude={"text"}))


async def create_book(file_name: str, content: ExtractedContent) -> Book:
    """Persist an extracted book."""
    db = await get_database()
    collection = db[COLLECTION_NAME]

    doc = {
        "_id": await next_sequence(COLLECTION_NAME),
        "title": content.title,
        "author": content.author,
        "fileName": file_name,
        "fileType": content.fileType.value,
        "wordCount": content.wordCount,
        "pageCount": content.pageCount,
        "text": content.text,
        "createdAt": datetime.now(UTC),
    }
    await collection.insert_one(doc)

    return _to_book(doc)


async def get_book(book_id: int) -> Book:
    """Get a book by ID."""
    db = await get_database()
    collection = db[COLLECTION_NAME]

    doc = await collection.find_one({"_id": book_id})
    if doc is None:
        raise BookNotFoundError(book_id)

    return _to_book(doc)
