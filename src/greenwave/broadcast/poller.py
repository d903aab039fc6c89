"""Watermark poller — turns the windowed query into "what's new since last time".

Learn: The watermark is the newest occurred_at ever fetched. It is
owned by one poller instance (never module state) and only moves
forward:

  unset  → fetch the bootstrap window (N most recent), watermark = max
  set    → fetch occurred_at > watermark, watermark = max if non-empty
  error  → log, return [], watermark untouched

A row whose timestamp equals the watermark is never fetched again; that
strict comparison is the only thing preventing re-delivery across ticks.
"""

from datetime import datetime
from typing import Optional

import structlog

from greenwave.events.source import EventSource
from greenwave.schemas.event import EventRecord

logger = structlog.get_logger()


class WatermarkPoller:
    def __init__(self, source: EventSource, bootstrap_window: int = 100):
        self.source = source
        self.bootstrap_window = bootstrap_window
        self._watermark: Optional[datetime] = None

    @property
    def watermark(self) -> Optional[datetime]:
        return self._watermark

    async def fetch_new(self) -> list[EventRecord]:
        """Return records newer than the watermark, newest first. Never raises."""
        since = self._watermark
        try:
            if since is None:
                batch = await self.source.fetch(limit=self.bootstrap_window)
            else:
                batch = await self.source.fetch(since=since)
        except Exception as e:
            logger.warning(
                "poller.fetch_failed",
                error=str(e),
                error_type=type(e).__name__,
                watermark=since.isoformat() if since else None,
            )
            return []

        if batch:
            newest = max(record.occurred_at for record in batch)
            if self._watermark is None or newest > self._watermark:
                self._watermark = newest
            logger.debug(
                "poller.fetched",
                count=len(batch),
                watermark=self._watermark.isoformat(),
            )
        return batch

    async def fetch_recent(self) -> list[EventRecord]:
        """Bootstrap window for late joiners. Ignores and never moves the watermark."""
        try:
            return await self.source.fetch(limit=self.bootstrap_window)
        except Exception as e:
            logger.warning("poller.bootstrap_failed", error=str(e))
            return []
