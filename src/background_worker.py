"""
Background Worker - in-process event queue for the webhook.

The webhook route only parses and enqueues; the platform gets its 200
before any post fetch or AI call happens. Consumer tasks started in the
application lifespan drain the queue into the orchestrator.

Architecture:
    ┌─────────────────────────────────────────────────────────────┐
    │  POST /threads-webhook                                      │
    │    parse → verify → submit(event) → 200 OK                  │
    │                         │                                   │
    │                   asyncio.Queue (bounded)                   │
    │                         │                                   │
    │  worker-0 … worker-N:  get → orchestrator.process(event)    │
    └─────────────────────────────────────────────────────────────┘

Configuration:
    EVENT_QUEUE_SIZE: Maximum queued events (default: 1000)
    WORKER_CONCURRENCY: Number of consumer tasks (default: 4)
    SHUTDOWN_GRACE_SECONDS: Time given to drain on shutdown (default: 5)
"""

import asyncio
import logging
from typing import Optional, TYPE_CHECKING

from src.models import InboundEvent, LogEntry, LogStatus

if TYPE_CHECKING:
    from src.alerts import AlertManager
    from src.audit_logger import AuditLogger
    from src.orchestrator import AutoReplyOrchestrator

logger = logging.getLogger(__name__)


class EventQueue:
    """Bounded queue of InboundEvents with a pool of consumer tasks."""

    def __init__(
        self,
        orchestrator: "AutoReplyOrchestrator",
        audit: Optional["AuditLogger"] = None,
        alerts: Optional["AlertManager"] = None,
        maxsize: int = 1000,
        concurrency: int = 4,
        system_user_id: str = "00000000-0000-0000-0000-000000000000",
    ) -> None:
        self.orchestrator = orchestrator
        self.audit = audit
        self.alerts = alerts
        self.concurrency = max(1, concurrency)
        self.system_user_id = system_user_id
        self._queue: asyncio.Queue[InboundEvent] = asyncio.Queue(maxsize=maxsize)
        self._workers: list[asyncio.Task] = []

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._workers)

    async def submit(self, event: InboundEvent) -> bool:
        """
        Enqueue an event without waiting for it to be processed.

        A full queue drops the event and records an ``error`` LogEntry
        under the system owner.

        Returns:
            True if queued, False if dropped.
        """
        try:
            self._queue.put_nowait(event)
            logger.debug(f"Queued {event.event_id} (depth {self.depth})")
            return True
        except asyncio.QueueFull:
            logger.error(f"Event queue full, dropping {event.event_id}")
            if self.audit:
                await self.audit.record(LogEntry(
                    user_id=self.system_user_id,
                    event_id=event.event_id,
                    status=LogStatus.ERROR,
                    text=event.raw_text or None,
                    error_message="Event queue full; event dropped",
                    thread_id=event.external_post_id,
                    target_user_id=event.username,
                    metadata={"delivery_id": event.delivery_id, "stage": "enqueue"},
                ))
            return False

    def start(self) -> None:
        """Start the consumer tasks on the running loop."""
        if self.running:
            return
        self._workers = [
            asyncio.create_task(self.run_worker(i), name=f"event-worker-{i}")
            for i in range(self.concurrency)
        ]
        logger.info(f"Background worker started ({self.concurrency} consumers)")

    async def stop(self, grace_seconds: float = 5.0) -> None:
        """Give queued events a bounded time to finish, then cancel consumers."""
        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=grace_seconds)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Shutdown grace period elapsed with {self.depth} event(s) still queued"
                )
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Background worker stopped")

    async def run_worker(self, worker_id: int) -> None:
        """Consume events until cancelled."""
        while True:
            event = await self._queue.get()
            try:
                await self._handle(event)
            finally:
                self._queue.task_done()

    async def drain(self) -> int:
        """
        Process everything currently queued on the calling task.

        Returns:
            Number of events processed.
        """
        processed = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return processed
            try:
                await self._handle(event)
                processed += 1
            finally:
                self._queue.task_done()

    async def _handle(self, event: InboundEvent) -> None:
        try:
            await self.orchestrator.process(event)
        except Exception as e:
            logger.exception(f"Pipeline crashed on {event.event_id}")
            if self.alerts:
                await self.alerts.critical(
                    "pipeline_crash",
                    f"Unhandled error while processing {event.event_id}",
                    delivery_id=event.delivery_id,
                    error=str(e),
                )
