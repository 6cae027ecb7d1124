"""WebSocket endpoint for live insight progress.

Protocol (JSON messages):
- client → server: {type: subscribe|unsubscribe|getProgress, insightId}
- server → client: connected, subscribed, unsubscribed, progress,
  noProgress, error
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from src.models.progress import (
    ClientMessage,
    connected_message,
    error_message,
    no_progress_message,
    subscription_message,
)
from src.services.progress_broadcaster import get_broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Progress"])


async def _handle_message(websocket: WebSocket, message: ClientMessage) -> None:
    broadcaster = get_broadcaster()

    if message.type == "subscribe":
        cached = await broadcaster.subscribe(message.insightId, websocket)
        await websocket.send_json(subscription_message("subscribed", message.insightId))
        # Late subscribers catch up from the cache
        if cached is not None:
            await websocket.send_json(cached.to_message())

    elif message.type == "unsubscribe":
        await broadcaster.unsubscribe(message.insightId, websocket)
        await websocket.send_json(subscription_message("unsubscribed", message.insightId))

    else:
        update = await broadcaster.get_progress(message.insightId)
        if update is None:
            await websocket.send_json(no_progress_message(message.insightId))
        else:
            await websocket.send_json(update.to_message())


@router.websocket("/ws")
async def progress_socket(websocket: WebSocket) -> None:
    """Subscribe to progress updates for one or more insights."""
    await websocket.accept()
    await websocket.send_json(connected_message())

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(frame.get("code", 1000))
            raw = frame.get("text")
            if raw is None:
                # Binary frames are not part of the protocol
                await websocket.send_json(error_message("Invalid message format"))
                continue
            try:
                message = ClientMessage.model_validate_json(raw)
            except PydanticValidationError:
                await websocket.send_json(error_message("Invalid message format"))
                continue
            await _handle_message(websocket, message)
    except WebSocketDisconnect:
        logger.debug("Progress socket disconnected")
    finally:
        await get_broadcaster().unsubscribe_all(websocket)
