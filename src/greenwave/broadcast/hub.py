"""Broadcast hub — wires one source to one poller, registry and dispatcher.

All broadcaster state lives on a hub instance (the app keeps one on
app.state), so tests can build as many independent hubs as they like.
"""

import asyncio
from typing import Optional

import structlog

from greenwave.broadcast.dispatcher import BroadcastDispatcher
from greenwave.broadcast.poller import WatermarkPoller
from greenwave.broadcast.registry import ConnectionRegistry
from greenwave.broadcast.session import PushChannel, ViewerSession
from greenwave.events.source import EventSource

logger = structlog.get_logger()


class BroadcastHub:
    def __init__(
        self,
        source: EventSource,
        poll_interval: float = 5.0,
        bootstrap_window: int = 100,
    ):
        self.source = source
        self.poller = WatermarkPoller(source, bootstrap_window=bootstrap_window)
        self.registry = ConnectionRegistry()
        self.dispatcher = BroadcastDispatcher(
            self.poller, self.registry, interval=poll_interval
        )
        self._tasks: list[asyncio.Task] = []

    async def join(self, channel: PushChannel) -> ViewerSession:
        """Create a session for an accepted channel and send its catch-up."""
        session = ViewerSession(channel, self.registry)
        # Bounded by one tick so a slow join never stalls the broadcast
        await session.open(
            self.poller.fetch_recent,
            bootstrap_timeout=self.dispatcher.interval,
        )
        return session

    async def start(self) -> None:
        """Start the store connection loop and the dispatcher ticker."""
        self._tasks = [
            asyncio.create_task(self.source.connect(), name="source-connect"),
            asyncio.create_task(self.dispatcher.run_loop(), name="dispatcher"),
        ]
        logger.info("hub.started")

    async def stop(self) -> None:
        await self.dispatcher.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        for _, session in self.registry.snapshot():
            session.close(reason="shutdown")
        await self.source.close()
        logger.info("hub.stopped")
