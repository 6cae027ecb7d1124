"""Book upload and lookup endpoints."""

from typing import Annotated

from fastapi import APIRouter, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from src.api.response import success_response
from src.services import book_service
from src.services.extraction_service import extract_content

router = APIRouter(prefix="/api/books", tags=["Books"])


@router.post("", status_code=201)
async def upload_book(file: Annotated[UploadFile, File(...)]) -> JSONResponse:
    """Upload a book (PDF, EPUB or TXT, max 50MB) and extract its text."""
    filename = file.filename or "unnamed.txt"
    data = await file.read()

    # pypdf and ebooklib are synchronous
    content = await run_in_threadpool(extract_content, data, filename, file.content_type)
    book = await book_service.create_book(filename, content)

    return JSONResponse(
        status_code=201,
        content=success_response(book_service.to_summary(book).model_dump(mode="json")),
    )


@router.get("/{book_id}")
async def get_book(book_id: int) -> JSONResponse:
    """Get a book by ID (without its full text)."""
    book = await book_service.get_book(book_id)
    return JSONResponse(
        content=success_response(book_service.to_summary(book).model_dump(mode="json"))
    )
