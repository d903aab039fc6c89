"""Broadcast dispatcher — one shared poll per tick, fanned out to everyone.

Learn: The dispatcher owns the only periodic task in the process:

  every interval:
    previous cycle still running? → skip this tick
    batch = poller.fetch_new()
    batch empty?                  → done
    payload = serialize(batch)    (once, not per viewer)
    snapshot registry, push payload to every session concurrently

A failed push closes (and unregisters) that one session; the gather
never short-circuits, so the other viewers still get the frame.

Polling is global rather than per-connection: every viewer should see
the same watermark-relative batch, and store load must not grow with
the number of open dashboards.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from greenwave.broadcast.poller import WatermarkPoller
from greenwave.broadcast.registry import ConnectionRegistry
from greenwave.schemas.event import serialize_batch

logger = structlog.get_logger()


@dataclass
class DispatcherStats:
    """Runtime statistics for monitoring."""
    ticks: int = 0
    skipped: int = 0
    batches: int = 0
    events_sent: int = 0
    push_failures: int = 0
    started_at: Optional[datetime] = None


class BroadcastDispatcher:
    def __init__(
        self,
        poller: WatermarkPoller,
        registry: ConnectionRegistry,
        interval: float = 5.0,
    ):
        self.poller = poller
        self.registry = registry
        self.interval = interval
        self.stats = DispatcherStats()
        self._in_flight = False
        self._running = False
        self._cycles: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def tick(self) -> bool:
        """Run one fetch+broadcast cycle. Returns False if skipped for overlap."""
        self.stats.ticks += 1
        if self._in_flight:
            self.stats.skipped += 1
            logger.warning("dispatcher.tick_skipped", reason="previous_cycle_running")
            return False

        self._in_flight = True
        try:
            batch = await self.poller.fetch_new()
            if not batch:
                return True

            payload = serialize_batch(batch)
            sessions = self.registry.snapshot()
            results = await asyncio.gather(
                *(session.send(payload) for _, session in sessions)
            )
            delivered = sum(1 for ok in results if ok)
            failed = len(results) - delivered

            self.stats.batches += 1
            self.stats.events_sent += len(batch) * delivered
            self.stats.push_failures += failed
            logger.info(
                "dispatcher.broadcast",
                events=len(batch),
                clients=delivered,
                failed=failed,
            )
            return True
        finally:
            self._in_flight = False

    async def run_loop(self) -> None:
        """Fire a cycle immediately, then every `interval` seconds.

        Learn: Each cycle runs as its own task so the ticker keeps its
        fixed cadence. A tick that lands while the last cycle is still
        waiting on the store is skipped by tick() itself.
        """
        self._running = True
        self.stats.started_at = datetime.now(timezone.utc)
        logger.info("dispatcher.started", interval=self.interval)

        while self._running:
            task = asyncio.create_task(self._guarded_tick())
            self._cycles.add(task)
            task.add_done_callback(self._cycles.discard)
            await asyncio.sleep(self.interval)

    async def _guarded_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("dispatcher.error")

    async def stop(self) -> None:
        """Stop ticking and cancel any cycle still in flight."""
        self._running = False
        for task in list(self._cycles):
            task.cancel()
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)
        logger.info(
            "dispatcher.stopped",
            ticks=self.stats.ticks,
            batches=self.stats.batches,
        )

    def get_stats(self) -> dict:
        """Return dispatcher statistics for monitoring."""
        return {
            "ticks": self.stats.ticks,
            "skipped": self.stats.skipped,
            "batches": self.stats.batches,
            "events_sent": self.stats.events_sent,
            "push_failures": self.stats.push_failures,
            "in_flight": self._in_flight,
            "interval_seconds": self.interval,
            "started_at": (
                self.stats.started_at.isoformat()
                if self.stats.started_at
                else None
            ),
        }
