"""Progress broadcaster for insight generation.

Owns the insight id → subscriber registry and pushes ProgressUpdate
messages to live WebSocket connections. Every update is also written to
the progress cache so late subscribers can replay the latest state.

Terminal updates (completed/failed) stay in the cache for a grace period
and are then evicted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi.websockets import WebSocketState

from src.models.progress import ProgressStatus, ProgressUpdate
from src.services.progress_cache import BaseProgressCache, get_progress_cache

logger = logging.getLogger(__name__)

# How long a terminal update stays readable after the run ends
TERMINAL_EVICTION_DELAY_SECONDS = 60.0


def _is_closed(connection: Any) -> bool:
    state = getattr(connection, "client_state", None)
    return state is not None and state != WebSocketState.CONNECTED


class ProgressBroadcaster:
    """Fan-out of progress updates keyed by insight id.

    Connections are any objects with an async `send_json(dict)` method
    (FastAPI WebSocket in production). Closed connections are pruned lazily
    while publishing.
    """

    def __init__(
        self,
        cache: Optional[BaseProgressCache] = None,
        eviction_delay_seconds: float = TERMINAL_EVICTION_DELAY_SECONDS,
    ):
        self._cache = cache
        self._subscribers: dict[int, set[Any]] = {}
        self._lock = asyncio.Lock()
        self._eviction_delay = eviction_delay_seconds
        self._eviction_tasks: set[asyncio.Task] = set()

    @property
    def cache(self) -> BaseProgressCache:
        return self._cache if self._cache is not None else get_progress_cache()

    async def subscribe(self, insight_id: int, connection: Any) -> Optional[ProgressUpdate]:
        """Register a connection and return the cached state to replay, if any."""
        async with self._lock:
            self._subscribers.setdefault(insight_id, set()).add(connection)
        logger.debug("Subscribed to insight progress", extra={"insight_id": insight_id})
        return await self.get_progress(insight_id)

    async def unsubscribe(self, insight_id: int, connection: Any) -> None:
        async with self._lock:
            self._discard(insight_id, connection)

    async def unsubscribe_all(self, connection: Any) -> None:
        """Drop a connection from every insight it follows (on disconnect)."""
        async with self._lock:
            for insight_id in list(self._subscribers):
                self._discard(insight_id, connection)

    def _discard(self, insight_id: int, connection: Any) -> None:
        # Caller holds the lock
        connections = self._subscribers.get(insight_id)
        if connections is None:
            return
        connections.discard(connection)
        if not connections:
            del self._subscribers[insight_id]

    def subscriber_count(self, insight_id: int) -> int:
        return len(self._subscribers.get(insight_id, ()))

    async def get_progress(self, insight_id: int) -> Optional[ProgressUpdate]:
        try:
            return await self.cache.get(insight_id)
        except Exception as e:
            logger.warning(
                "Progress cache read failed: %s",
                e,
                extra={"insight_id": insight_id},
            )
            return None

    async def publish(self, update: ProgressUpdate) -> int:
        """Cache an update and send it to every live subscriber.

        Returns:
            Number of connections the message was delivered to.
        """
        try:
            await self.cache.set(update)
        except Exception as e:
            # Live subscribers still get the update
            logger.warning(
                "Progress cache write failed: %s",
                e,
                extra={"insight_id": update.insightId},
            )

        async with self._lock:
            connections = list(self._subscribers.get(update.insightId, ()))

        message = update.to_message()
        delivered = 0
        stale = []
        for connection in connections:
            if _is_closed(connection):
                stale.append(connection)
                continue
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception as e:
                logger.debug(
                    "Dropping subscriber after send failure: %s",
                    e,
                    extra={"insight_id": update.insightId},
                )
                stale.append(connection)

        if stale:
            async with self._lock:
                for connection in stale:
                    self._discard(update.insightId, connection)

        return delivered

    async def broadcast(
        self,
        insight_id: int,
        status: ProgressStatus,
        percent: int,
        step: str,
        section_count: Optional[int] = None,
        word_count: Optional[int] = None,
        error: Optional[str] = None,
    ) -> ProgressUpdate:
        """Build, publish and (for terminal states) schedule eviction of an update."""
        update = ProgressUpdate(
            insightId=insight_id,
            status=status,
            percent=percent,
            currentStep=step,
            sectionCount=section_count,
            wordCount=word_count,
            error=error,
        )
        delivered = await self.publish(update)
        logger.debug(
            "Progress broadcast",
            extra={
                "insight_id": insight_id,
                "status": status.value,
                "percent": percent,
                "delivered": delivered,
            },
        )

        if update.is_terminal:
            self._schedule_eviction(update)
        return update

    def _schedule_eviction(self, update: ProgressUpdate) -> None:
        task = asyncio.create_task(self._evict_later(update))
        self._eviction_tasks.add(task)
        task.add_done_callback(self._eviction_tasks.discard)

    async def _evict_later(self, update: ProgressUpdate) -> None:
        await asyncio.sleep(self._eviction_delay)
        try:
            removed = await self.cache.evict_if_unchanged(update.insightId, update)
        except Exception as e:
            logger.warning(
                "Progress cache eviction failed: %s",
                e,
                extra={"insight_id": update.insightId},
            )
            return
        if removed:
            logger.debug("Evicted terminal progress", extra={"insight_id": update.insightId})

    async def shutdown(self) -> None:
        """Cancel pending evictions."""
        tasks = list(self._eviction_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


# Module-level singleton instance
_default_broadcaster: Optional[ProgressBroadcaster] = None


def get_broadcaster() -> ProgressBroadcaster:
    """Get the default broadcaster singleton."""
    global _default_broadcaster
    if _default_broadcaster is None:
        _default_broadcaster = ProgressBroadcaster()
    return _default_broadcaster


def set_broadcaster(broadcaster: Optional[ProgressBroadcaster]) -> None:
    """Replace the default broadcaster (used by tests)."""
    global _default_broadcaster
    _default_broadcaster = broadcaster


async def broadcast_progress(
    insight_id: int,
    status: ProgressStatus,
    percent: int,
    step: str,
    section_count: Optional[int] = None,
    word_count: Optional[int] = None,
    error: Optional[str] = None,
) -> ProgressUpdate:
    """Broadcast using the default broadcaster."""
    return await get_broadcaster().broadcast(
        insight_id,
        status,
        percent,
        step,
        section_count=section_count,
        word_count=word_count,
        error=error,
    )
