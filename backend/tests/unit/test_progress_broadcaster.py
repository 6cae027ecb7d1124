"""Tests for the progress broadcaster."""

import asyncio

import pytest
from fastapi.websockets import WebSocketState

from src.models.progress import ProgressStatus, ProgressUpdate
from src.services.progress_broadcaster import ProgressBroadcaster, broadcast_progress
from src.services.progress_cache import InMemoryProgressCache


class BrokenCache(InMemoryProgressCache):
    async def set(self, update):
        raise ConnectionError("redis unavailable")

    async def get(self, insight_id):
        raise ConnectionError("redis unavailable")


class TestSubscriptions:
    """Tests for the subscriber registry."""

    @pytest.mark.asyncio
    async def test_subscribe_without_progress(self, broadcaster, fake_websocket):
        ws = fake_websocket()
        assert await broadcaster.subscribe(1, ws) is None
        assert broadcaster.subscriber_count(1) == 1

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_cached_state(self, broadcaster, fake_websocket):
        await broadcaster.broadcast(1, ProgressStatus.generating, 40, "Generating core concepts")

        replay = await broadcaster.subscribe(1, fake_websocket())

        assert replay.percent == 40
        assert replay.currentStep == "Generating core concepts"

    @pytest.mark.asyncio
    async def test_unsubscribe(self, broadcaster, fake_websocket):
        ws = fake_websocket()
        await broadcaster.subscribe(1, ws)
        await broadcaster.unsubscribe(1, ws)
        await broadcaster.unsubscribe(2, ws)

        assert broadcaster.subscriber_count(1) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_all(self, broadcaster, fake_websocket):
        ws, other = fake_websocket(), fake_websocket()
        await broadcaster.subscribe(1, ws)
        await broadcaster.subscribe(2, ws)
        await broadcaster.subscribe(2, other)

        await broadcaster.unsubscribe_all(ws)

        assert broadcaster.subscriber_count(1) == 0
        assert broadcaster.subscriber_count(2) == 1


class TestBroadcast:
    """Tests for publishing updates."""

    @pytest.mark.asyncio
    async def test_delivers_to_subscribers_only(self, broadcaster, fake_websocket):
        mine, theirs = fake_websocket(), fake_websocket()
        await broadcaster.subscribe(1, mine)
        await broadcaster.subscribe(2, theirs)

        await broadcaster.broadcast(1, ProgressStatus.generating, 25, "Generating foundation")

        assert mine.sent == [{
            "type": "progress",
            "insightId": 1,
            "status": "generating",
            "percent": 25,
            "currentStep": "Generating foundation",
        }]
        assert theirs.sent == []

    @pytest.mark.asyncio
    async def test_optional_counts_included(self, broadcaster, fake_websocket):
        ws = fake_websocket()
        await broadcaster.subscribe(1, ws)

        await broadcaster.broadcast(1, ProgressStatus.generating, 70, "Gap analysis", section_count=21, word_count=9018)

        assert ws.sent[0]["sectionCount"] == 21
        assert ws.sent[0]["wordCount"] == 9018

    @pytest.mark.asyncio
    async def test_failing_connection_pruned(self, broadcaster, fake_websocket):
        good, bad = fake_websocket(), fake_websocket(fail=True)
        await broadcaster.subscribe(1, good)
        await broadcaster.subscribe(1, bad)

        update = await broadcaster.broadcast(1, ProgressStatus.generating, 10, "Analyzing")

        assert good.sent == [update.to_message()]
        assert broadcaster.subscriber_count(1) == 1

    @pytest.mark.asyncio
    async def test_closed_connection_pruned(self, broadcaster, fake_websocket):
        closed = fake_websocket()
        closed.client_state = WebSocketState.DISCONNECTED
        await broadcaster.subscribe(1, closed)

        delivered = await broadcaster.publish(
            ProgressUpdate(insightId=1, status=ProgressStatus.generating, percent=5, currentStep="Starting")
        )

        assert delivered == 0
        assert closed.sent == []
        assert broadcaster.subscriber_count(1) == 0

    @pytest.mark.asyncio
    async def test_terminal_update_evicted(self, broadcaster):
        await broadcaster.broadcast(1, ProgressStatus.completed, 100, "Complete")
        assert await broadcaster.get_progress(1) is not None

        await asyncio.sleep(0.05)

        assert await broadcaster.get_progress(1) is None

    @pytest.mark.asyncio
    async def test_eviction_spares_newer_run(self, broadcaster):
        await broadcaster.broadcast(1, ProgressStatus.failed, 40, "Failed", error="boom")
        await broadcaster.broadcast(1, ProgressStatus.generating, 0, "Starting")

        await asyncio.sleep(0.05)

        current = await broadcaster.get_progress(1)
        assert current.status == ProgressStatus.generating

    @pytest.mark.asyncio
    async def test_cache_outage_does_not_fail_broadcast(self, fake_websocket):
        broadcaster = ProgressBroadcaster(cache=BrokenCache(), eviction_delay_seconds=0.01)
        ws = fake_websocket()
        await broadcaster.subscribe(1, ws)

        await broadcaster.broadcast(1, ProgressStatus.generating, 10, "Analyzing")

        assert len(ws.sent) == 1
        assert await broadcaster.get_progress(1) is None

    @pytest.mark.asyncio
    async def test_shutdown_cancels_evictions(self, fake_websocket):
        broadcaster = ProgressBroadcaster(cache=InMemoryProgressCache(), eviction_delay_seconds=60)
        await broadcaster.broadcast(1, ProgressStatus.completed, 100, "Complete")

        await broadcaster.shutdown()

        assert await broadcaster.get_progress(1) is not None

    @pytest.mark.asyncio
    async def test_module_broadcast_uses_default(self, broadcaster, fake_websocket):
        ws = fake_websocket()
        await broadcaster.subscribe(9, ws)

        await broadcast_progress(9, ProgressStatus.generating, 50, "Halfway")

        assert ws.sent[0]["percent"] == 50
