"""
Real Functionality Tests - Background Worker.

Tests the in-process event queue:
- Submitting does not process; draining does
- A full queue drops the event and audits the drop
- Consumer tasks process queued events and stop cleanly
- A crashing orchestrator is reported and does not kill the consumer

Mocks: Orchestrator, alerts
Real: Queue, consumer loop, audit logger, SQLite store
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.background_worker import EventQueue
from src.models import EventKind, InboundEvent


def event(media_id: str) -> InboundEvent:
    return InboundEvent(kind=EventKind.MENTION, external_post_id=media_id, raw_text="hi")


@pytest.fixture
def mock_orchestrator():
    orchestrator = AsyncMock()
    orchestrator.process = AsyncMock(return_value=[])
    return orchestrator


@pytest.mark.real
@pytest.mark.asyncio
class TestEventQueueReal:
    """Real functionality tests for the event queue."""

    async def test_submit_queues_without_processing(self, mock_orchestrator, audit):
        queue = EventQueue(mock_orchestrator, audit=audit, maxsize=5)

        assert await queue.submit(event("1")) is True
        assert queue.depth == 1
        mock_orchestrator.process.assert_not_awaited()

        assert await queue.drain() == 1
        assert queue.depth == 0
        mock_orchestrator.process.assert_awaited_once()

    async def test_full_queue_drops_and_audits(self, mock_orchestrator, audit, sqlite_db):
        queue = EventQueue(mock_orchestrator, audit=audit, maxsize=1, system_user_id="system")

        assert await queue.submit(event("1")) is True
        assert await queue.submit(event("2")) is False

        rows = await sqlite_db.get_logs("system")
        assert len(rows) == 1
        assert rows[0]["status"] == "error"
        assert rows[0]["event_id"] == "mention_2"
        assert "queue full" in rows[0]["error_message"].lower()

    async def test_workers_consume_until_stopped(self, mock_orchestrator):
        queue = EventQueue(mock_orchestrator, maxsize=10, concurrency=2)
        queue.start()
        assert queue.running

        for i in range(5):
            await queue.submit(event(str(i)))
        await asyncio.wait_for(queue._queue.join(), timeout=2)

        await queue.stop(grace_seconds=0.5)

        assert mock_orchestrator.process.await_count == 5
        assert not queue.running

    async def test_crash_is_reported_and_consumer_survives(self, mock_orchestrator, mock_alerts):
        mock_orchestrator.process.side_effect = [RuntimeError("boom"), []]
        queue = EventQueue(mock_orchestrator, alerts=mock_alerts, concurrency=1)
        queue.start()

        await queue.submit(event("1"))
        await queue.submit(event("2"))
        await asyncio.wait_for(queue._queue.join(), timeout=2)
        await queue.stop(grace_seconds=0.1)

        assert mock_orchestrator.process.await_count == 2
        mock_alerts.critical.assert_awaited_once()
        assert mock_alerts.critical.await_args.args[0] == "pipeline_crash"

    async def test_stop_without_start_is_harmless(self, mock_orchestrator):
        queue = EventQueue(mock_orchestrator)
        await queue.stop(grace_seconds=0.1)
        assert not queue.running
