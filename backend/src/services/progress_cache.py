"""Progress cache for insight generation runs.

Holds the latest ProgressUpdate per insight id so late subscribers and
polling clients can read the current state. Entries expire after one hour.

Backends:
- InMemoryProgressCache: default, single process, asyncio lock
- RedisProgressCache: used when REDIS_URL is set (keys `progress:{id}`)
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Optional

from src.models.progress import ProgressUpdate

logger = logging.getLogger(__name__)

# Entries older than this are treated as absent (1 hour)
DEFAULT_PROGRESS_TTL_SECONDS = 3600

KEY_PREFIX = "progress:"


def progress_key(insight_id: int) -> str:
    return f"{KEY_PREFIX}{insight_id}"


class BaseProgressCache(ABC):
    """Latest-progress-per-insight storage."""

    @abstractmethod
    async def set(self, update: ProgressUpdate) -> None:
        ...

    @abstractmethod
    async def get(self, insight_id: int) -> Optional[ProgressUpdate]:
        ...

    @abstractmethod
    async def delete(self, insight_id: int) -> None:
        ...

    async def evict_if_unchanged(self, insight_id: int, expected: ProgressUpdate) -> bool:
        """Delete the entry only if it still equals `expected`.

        A new run for the same id overwrites the entry, so a delayed
        eviction scheduled by the previous run leaves it alone.

        Returns:
            True if the entry was removed.
        """
        current = await self.get(insight_id)
        if current is None or current != expected:
            return False
        await self.delete(insight_id)
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryProgressCache(BaseProgressCache):
    """Process-local cache with per-entry TTL.

    Usage:
        cache = InMemoryProgressCache()
        await cache.set(update)
        latest = await cache.get(update.insightId)
    """

    def __init__(self, ttl_seconds: int = DEFAULT_PROGRESS_TTL_SECONDS):
        self._entries: dict[int, tuple[ProgressUpdate, float]] = {}
        self._lock = asyncio.Lock()
        self._ttl_seconds = ttl_seconds

    async def set(self, update: ProgressUpdate) -> None:
        async with self._lock:
            self._entries[update.insightId] = (update, time.monotonic() + self._ttl_seconds)

    async def get(self, insight_id: int) -> Optional[ProgressUpdate]:
        async with self._lock:
            entry = self._entries.get(insight_id)
            if entry is None:
                return None
            update, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._entries[insight_id]
                return None
            return update

    async def delete(self, insight_id: int) -> None:
        async with self._lock:
            self._entries.pop(insight_id, None)

    async def evict_if_unchanged(self, insight_id: int, expected: ProgressUpdate) -> bool:
        async with self._lock:
            entry = self._entries.get(insight_id)
            if entry is None or entry[0] != expected:
                return False
            del self._entries[insight_id]
            return True

    def __len__(self) -> int:
        return len(self._entries)


class RedisProgressCache(BaseProgressCache):
    """Redis-backed cache; values are ProgressUpdate JSON stored with SETEX."""

    def __init__(self, client, ttl_seconds: int = DEFAULT_PROGRESS_TTL_SECONDS):
        """Initialize the cache.

        Args:
            client: A `redis.asyncio.Redis` instance.
            ttl_seconds: Expiry applied on every write.
        """
        self._client = client
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = DEFAULT_PROGRESS_TTL_SECONDS) -> "RedisProgressCache":
        from redis import asyncio as redis

        client = redis.from_url(
            url,
            max_connections=50,
            socket_keepalive=True,
            socket_connect_timeout=5,
        )
        return cls(client, ttl_seconds=ttl_seconds)

    async def set(self, update: ProgressUpdate) -> None:
        await self._client.setex(
            progress_key(update.insightId),
            self._ttl_seconds,
            update.model_dump_json(),
        )

    async def get(self, insight_id: int) -> Optional[ProgressUpdate]:
        raw = await self._client.get(progress_key(insight_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return ProgressUpdate.model_validate_json(raw)

    async def delete(self, insight_id: int) -> None:
        await self._client.delete(progress_key(insight_id))

    async def close(self) -> None:
        await self._client.aclose()


# Module-level singleton instance
_default_cache: Optional[BaseProgressCache] = None


def get_progress_cache() -> BaseProgressCache:
    """Get the default progress cache.

    Picks Redis when REDIS_URL is set, in-memory otherwise.
    """
    global _default_cache
    if _default_cache is None:
        url = os.environ.get("REDIS_URL", "").strip()
        if url:
            _default_cache = RedisProgressCache.from_url(url)
            logger.info("Using Redis progress cache")
        else:
            _default_cache = InMemoryProgressCache()
            logger.info("Using in-memory progress cache")
    return _default_cache


def set_progress_cache(cache: Optional[BaseProgressCache]) -> None:
    """Replace the default cache (used by tests)."""
    global _default_cache
    _default_cache = cache
