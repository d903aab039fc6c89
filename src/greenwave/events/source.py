"""Event source adapter — the windowed query against the event store.

Learn: Two query modes share one statement builder:

  fetch(since=None, limit=N)  → the N most recent passages overall
  fetch(since=ts)             → every passage strictly after ts

Both return rows newest-first (timestamp DESC, id DESC). The poller
builds its watermark logic on top of this; the adapter itself keeps no
state beyond whether the store has been reached yet.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import Select, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from greenwave.db.engine import create_session_factory
from greenwave.db.models import Ambulance, AmbulanceEvent
from greenwave.exceptions import SourceError, SourceUnavailable
from greenwave.schemas.event import EventRecord

logger = structlog.get_logger()


class EventSource(ABC):
    """Anything that can answer the windowed "recent passages" query."""

    @abstractmethod
    async def fetch(
        self,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[EventRecord]:
        """Return records newest-first. Raises SourceError on failure."""

    @property
    def connected(self) -> bool:
        return True

    async def connect(self) -> None:
        """Establish the connection. Sources without one return at once."""

    async def close(self) -> None:
        """Release pooled resources."""


def build_events_query(
    since: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> Select:
    """Build the passage query, newest first."""
    stmt = (
        select(
            AmbulanceEvent.id,
            Ambulance.plate,
            AmbulanceEvent.traffic_light_id,
            AmbulanceEvent.timestamp,
        )
        .select_from(AmbulanceEvent)
        .join(Ambulance, AmbulanceEvent.ambulance_id == Ambulance.id)
        .order_by(AmbulanceEvent.timestamp.desc(), AmbulanceEvent.id.desc())
    )
    if since is not None:
        # Strictly greater: the row at the watermark was already delivered
        stmt = stmt.where(AmbulanceEvent.timestamp > since)
    if limit is not None:
        stmt = stmt.limit(limit)
    return stmt


class SqlEventSource(EventSource):
    """Reads passages from the relational store through SQLAlchemy."""

    def __init__(self, engine: AsyncEngine, retry_delay: float = 5.0):
        self.engine = engine
        self.retry_delay = retry_delay
        self._session_factory = create_session_factory(engine)
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Probe the store until it answers, retrying at a fixed delay.

        Learn: Runs as a background task from the app lifespan. The
        server keeps serving (with empty data) while this loops, so a
        database outage at boot never takes the dashboards down.
        """
        attempt = 0
        while not self._connected:
            attempt += 1
            try:
                async with self.engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
                logger.warning(
                    "source.connect_failed",
                    attempt=attempt,
                    error=str(e),
                    retry_in=self.retry_delay,
                )
                await asyncio.sleep(self.retry_delay)
            else:
                self._connected = True
                logger.info("source.connected", attempt=attempt)

    async def fetch(
        self,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[EventRecord]:
        if not self._connected:
            raise SourceUnavailable("event store connection not established")

        stmt = build_events_query(since=since, limit=limit)
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                rows = result.all()
        except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
            raise SourceError(str(e)) from e

        return [
            EventRecord(
                id=row.id,
                entity_id=row.plate,
                checkpoint_id=str(row.traffic_light_id),
                occurred_at=row.timestamp,
            )
            for row in rows
        ]

    async def close(self) -> None:
        await self.engine.dispose()
        self._connected = False
