"""Insight records and background generation tasks.

Records live in MongoDB. Generation runs as one asyncio task per insight,
tracked by id so it can be cancelled. Running tasks are lost on server
restart; their records stay in `generating`.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import UTC, datetime
from typing import Any, Optional

from src.api.exceptions import InsightNotFoundError
from src.db.mongo import get_database, next_sequence
from src.models.book import Book, Insight, InsightStatus
from src.models.insight import GeneratedInsight
from src.services import book_service
from src.services.insight_pipeline import InsightPipeline

logger = logging.getLogger(__name__)

COLLECTION_NAME = "insights"
CANCELLED_MESSAGE = "Generation cancelled"

_tasks: dict[int, asyncio.Task] = {}
_pending_writes: set[asyncio.Task] = set()


def _to_insight(doc: dict) -> Insight:
    """Convert MongoDB document to Insight model."""
    content = doc.get("content")
    return Insight(
        id=doc["_id"],
        bookId=doc["bookId"],
        status=InsightStatus(doc["status"]),
        generationProgress=doc.get("generationProgress", 0),
        currentStage=doc.get("currentStage"),
        errorMessage=doc.get("errorMessage"),
        content=GeneratedInsight.model_validate(content) if content else None,
        createdAt=doc["createdAt"],
        updatedAt=doc["updatedAt"],
    )


async def create_insight(book_id: int) -> Insight:
    """Create an insight record in `generating` state."""
    db = await get_database()
    collection = db[COLLECTION_NAME]

    now = datetime.now(UTC)
    doc = {
        "_id": await next_sequence(COLLECTION_NAME),
        "bookId": book_id,
        "status": InsightStatus.GENERATING.value,
        "generationProgress": 0,
        "currentStage": None,
        "errorMessage": None,
        "content": None,
        "createdAt": now,
        "updatedAt": now,
    }
    await collection.insert_one(doc)

    return _to_insight(doc)


async def get_insight(insight_id: int) -> Insight:
    """Get an insight by ID."""
    db = await get_database()
    collection = db[COLLECTION_NAME]

    doc = await collection.find_one({"_id": insight_id})
    if doc is None:
        raise InsightNotFoundError(insight_id)

    return _to_insight(doc)


async def update_insight(insight_id: int, **fields: Any) -> None:
    """Set fields on an insight record and bump updatedAt."""
    db = await get_database()
    collection = db[COLLECTION_NAME]

    fields["updatedAt"] = datetime.now(UTC)
    result = await collection.update_one({"_id": insight_id}, {"$set": fields})
    if result.matched_count == 0:
        raise InsightNotFoundError(insight_id)


async def _mark_cancelled(insight_id: int) -> None:
    # Only a record still generating is touched; completed or failed ones stay
    db = await get_database()
    await db[COLLECTION_NAME].update_one(
        {"_id": insight_id, "status": InsightStatus.GENERATING.value},
        {
            "$set": {
                "status": InsightStatus.FAILED.value,
                "currentStage": "failed",
                "errorMessage": CANCELLED_MESSAGE,
                "updatedAt": datetime.now(UTC),
            }
        },
    )


def _on_generation_done(insight_id: int, task: asyncio.Task) -> None:
    """Forget a finished task; persist cancellation if the task never ran."""
    if _tasks.get(insight_id) is task:
        del _tasks[insight_id]
    if task.cancelled():
        write = asyncio.ensure_future(_mark_cancelled(insight_id))
        _pending_writes.add(write)
        write.add_done_callback(_pending_writes.discard)


async def _run_generation(insight_id: int, book: Book, pipeline: InsightPipeline) -> None:
    """Background task: run the pipeline and persist the outcome."""

    async def on_progress(stage: str, percent: int) -> None:
        # Terminal states are written below with the content or error
        if stage in ("completed", "failed"):
            return
        await update_insight(insight_id, generationProgress=percent, currentStage=stage)

    try:
        content = await pipeline.run(
            book.title,
            book.author,
            book.text,
            insight_id=insight_id,
            on_progress=on_progress,
        )
    except asyncio.CancelledError:
        await _mark_cancelled(insight_id)
        raise
    except Exception as e:
        await update_insight(
            insight_id,
            status=InsightStatus.FAILED.value,
            currentStage="failed",
            errorMessage=str(e) or type(e).__name__,
        )
        return

    await update_insight(
        insight_id,
        status=InsightStatus.COMPLETED.value,
        generationProgress=100,
        currentStage="completed",
        content=content.model_dump(mode="json"),
    )
    logger.info(
        "Insight persisted",
        extra={"insight_id": insight_id, "book_id": book.id, "word_count": content.wordCount},
    )


async def start_generation(book_id: int, pipeline: Optional[InsightPipeline] = None) -> Insight:
    """Create an insight for a book and start generating it in the background.

    Args:
        book_id: Book to generate from.
        pipeline: Pipeline to run; defaults to one with the shared collaborators.

    Returns:
        The new record, still in `generating` state.

    Raises:
        BookNotFoundError: If the book does not exist.
    """
    book = await book_service.get_book(book_id)
    insight = await create_insight(book_id)

    logger.info(
        "Starting insight generation",
        extra={"insight_id": insight.id, "book_id": book_id, "word_count": book.wordCount},
    )

    task = asyncio.create_task(
        _run_generation(insight.id, book, pipeline or InsightPipeline()),
        name=f"insight_generation_{insight.id}",
    )
    _tasks[insight.id] = task
    task.add_done_callback(functools.partial(_on_generation_done, insight.id))
    return insight


def get_task(insight_id: int) -> Optional[asyncio.Task]:
    """The running generation task for an insight, if any."""
    return _tasks.get(insight_id)


async def cancel_generation(insight_id: int) -> bool:
    """Request cancellation of a running generation.

    Returns:
        True if a running task was cancelled, False if none was running.

    Raises:
        InsightNotFoundError: If the insight does not exist.
    """
    await get_insight(insight_id)

    task = _tasks.get(insight_id)
    if task is None or task.done():
        return False

    task.cancel()
    logger.info("Insight generation cancel requested", extra={"insight_id": insight_id})
    return True


async def shutdown() -> None:
    """Cancel all running generation tasks."""
    tasks = list(_tasks.values())
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    _tasks.clear()
    if _pending_writes:
        await asyncio.gather(*_pending_writes, return_exceptions=True)
