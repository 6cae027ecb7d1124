"""FastAPI application setup."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from src.api.exceptions import (
    BookNotFoundError,
    ExtractionError,
    FileTooLargeError,
    InsightNotFoundError,
    InvalidFileTypeError,
    ValidationError,
)
from src.api.response import error_response
from src.api.routes import books, health, insights, progress_ws
from src.db.mongo import close_database
from src.llm import LLMError
from src.services import insight_service
from src.services.narration_service import AUDIO_BASE_URL, AUDIO_DIR
from src.services.progress_broadcaster import get_broadcaster
from src.services.progress_cache import get_progress_cache


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    yield
    # Shutdown
    await insight_service.shutdown()
    await get_broadcaster().shutdown()
    await get_progress_cache().close()
    await close_database()


app = FastAPI(
    title="Insight Atlas API",
    description="Backend API for book upload and premium insight generation",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware for frontend dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:5174",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:5174",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(BookNotFoundError)
async def book_not_found_handler(request: Request, exc: BookNotFoundError) -> JSONResponse:
    """Handle book not found errors."""
    return JSONResponse(
        status_code=404,
        content=error_response("BOOK_NOT_FOUND", str(exc)),
    )


@app.exception_handler(InsightNotFoundError)
async def insight_not_found_handler(request: Request, exc: InsightNotFoundError) -> JSONResponse:
    """Handle insight not found errors."""
    return JSONResponse(
        status_code=404,
        content=error_response("INSIGHT_NOT_FOUND", str(exc)),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=error_response("VALIDATION_ERROR", exc.message),
    )


@app.exception_handler(ServerSelectionTimeoutError)
async def mongo_timeout_handler(request: Request, exc: ServerSelectionTimeoutError) -> JSONResponse:
    """Handle MongoDB connection timeout."""
    return JSONResponse(
        status_code=503,
        content=error_response("DATABASE_UNAVAILABLE", "Database is not available. Please try again later."),
    )


@app.exception_handler(ConnectionFailure)
async def mongo_connection_handler(request: Request, exc: ConnectionFailure) -> JSONResponse:
    """Handle MongoDB connection failure."""
    return JSONResponse(
        status_code=503,
        content=error_response("DATABASE_UNAVAILABLE", "Database connection failed. Please try again later."),
    )


@app.exception_handler(FileTooLargeError)
async def file_too_large_handler(request: Request, exc: FileTooLargeError) -> JSONResponse:
    """Handle file too large errors."""
    return JSONResponse(
        status_code=400,
        content=error_response(
            "FILE_TOO_LARGE",
            f"File size exceeds maximum of {exc.max_size // (1024 * 1024)}MB",
        ),
    )


@app.exception_handler(InvalidFileTypeError)
async def invalid_file_type_handler(request: Request, exc: InvalidFileTypeError) -> JSONResponse:
    """Handle invalid file type errors."""
    return JSONResponse(
        status_code=400,
        content=error_response(
            "INVALID_FILE_TYPE",
            f"File type '{exc.file_type}' is not supported. Allowed: PDF, EPUB, TXT",
        ),
    )


@app.exception_handler(ExtractionError)
async def extraction_error_handler(request: Request, exc: ExtractionError) -> JSONResponse:
    """Handle unreadable uploads."""
    return JSONResponse(
        status_code=422,
        content=error_response("EXTRACTION_FAILED", str(exc)),
    )


@app.exception_handler(LLMError)
async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    """Handle LLM/AI service errors."""
    return JSONResponse(
        status_code=503,
        content=error_response("AI_SERVICE_ERROR", "AI service is temporarily unavailable. Please try again."),
    )


# Register routes
app.include_router(health.router)
app.include_router(books.router)
app.include_router(insights.router)
app.include_router(progress_ws.router)

# Generated narration files, unless served from another host
if AUDIO_BASE_URL.startswith("/"):
    AUDIO_DIR.mkdir(parents=True, exist_ok=True)
    app.mount(AUDIO_BASE_URL.rstrip("/"), StaticFiles(directory=AUDIO_DIR), name="audio")
