"""Health check endpoint."""

from fastapi import APIRouter

from src.api.response import success_response
from src.llm import get_client
from src.services.narration_service import get_narration_service

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check() -> dict:
    """Return system health status.

    Also reports which LLM roles have credentials and whether narration
    can be synthesized. No provider is contacted.
    """
    return success_response({
        "status": "ok",
        "llmProviders": [attempt.role for attempt in get_client().attempt_chain()],
        "speechConfigured": get_narration_service().is_configured(),
    })
