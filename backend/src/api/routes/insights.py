"""Insight generation endpoints.

Generation is job-based:
- POST /api/insights/generate: create an insight and start generating it
- GET /api/insights/{insight_id}: persisted record, with content once completed
- GET /api/insights/{insight_id}/progress: latest cached progress update
- POST /api/insights/{insight_id}/cancel: cancel a running generation

Live progress is pushed over the /ws WebSocket.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from src.api.response import success_response
from src.models.book import GenerateInsightRequest, GenerateInsightResponse
from src.models.progress import no_progress_message
from src.services import insight_service
from src.services.progress_broadcaster import get_broadcaster

router = APIRouter(prefix="/api/insights", tags=["Insights"])


@router.post("/generate", status_code=202)
async def generate_insight(request: GenerateInsightRequest) -> JSONResponse:
    """Start insight generation for an uploaded book.

    Returns immediately; subscribe on /ws or poll the record for progress.
    """
    insight = await insight_service.start_generation(request.bookId)
    response = GenerateInsightResponse(insightId=insight.id, status=insight.status)
    return JSONResponse(
        status_code=202,
        content=success_response(response.model_dump(mode="json")),
    )


@router.get("/{insight_id}")
async def get_insight(insight_id: int) -> JSONResponse:
    """Get an insight record by ID."""
    insight = await insight_service.get_insight(insight_id)
    return JSONResponse(content=success_response(insight.model_dump(mode="json")))


@router.get("/{insight_id}/progress")
async def get_insight_progress(insight_id: int) -> JSONResponse:
    """Latest progress update from the cache."""
    update = await get_broadcaster().get_progress(insight_id)
    payload = update.to_message() if update else no_progress_message(insight_id)
    return JSONResponse(content=success_response(payload))


@router.post("/{insight_id}/cancel")
async def cancel_insight(insight_id: int) -> JSONResponse:
    """Cancel a running generation."""
    cancelled = await insight_service.cancel_generation(insight_id)
    return JSONResponse(
        content=success_response({"insightId": insight_id, "cancelled": cancelled})
    )
