"""Progress update and WebSocket message models.

Client → server: subscribe / unsubscribe / getProgress with an insightId.
Server → client: connected, subscribed, unsubscribed, progress,
noProgress and error messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ProgressStatus(str, Enum):
    """Status of a pipeline run as seen by subscribers."""
    generating = "generating"
    completed = "completed"
    failed = "failed"


TERMINAL_STATUSES = frozenset({ProgressStatus.completed, ProgressStatus.failed})


class ProgressUpdate(BaseModel):
    """One percent/step tuple for an insight run."""
    model_config = ConfigDict(extra="forbid")

    insightId: int
    status: ProgressStatus
    percent: int = Field(ge=0, le=100)
    currentStep: str
    sectionCount: Optional[int] = Field(default=None, ge=0)
    wordCount: Optional[int] = Field(default=None, ge=0)
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_message(self) -> Dict[str, Any]:
        """Wire shape of a `progress` message."""
        return {"type": "progress", **self.model_dump(mode="json", exclude_none=True)}


class ClientMessage(BaseModel):
    """Message sent by a WebSocket client."""
    model_config = ConfigDict(extra="ignore")

    type: Literal["subscribe", "unsubscribe", "getProgress"]
    insightId: int


def connected_message() -> Dict[str, Any]:
    return {"type": "connected"}


def subscription_message(kind: Literal["subscribed", "unsubscribed"], insight_id: int) -> Dict[str, Any]:
    return {"type": kind, "insightId": insight_id}


def no_progress_message(insight_id: int) -> Dict[str, Any]:
    return {"type": "noProgress", "insightId": insight_id}


def error_message(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}
