"""Test fixtures — in-memory event store, recording channels, app clients.

Learn: Nothing here needs a database. FakeEventSource answers the same
windowed query the SQL adapter does (newest first, strict `since`,
optional limit) from a list, and can be told to fail or to block so
tests can hold a fetch open across a tick.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from greenwave.config import Settings
from greenwave.events.source import EventSource
from greenwave.exceptions import SourceError
from greenwave.main import create_app
from greenwave.schemas.event import EventRecord

BASE_TIME = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def make_event(n: int, plate: Optional[str] = None, light: Optional[str] = None) -> EventRecord:
    """Event #n, n seconds after BASE_TIME."""
    return EventRecord(
        id=n,
        entity_id=plate or f"AMB-{n % 7:03d}",
        checkpoint_id=light or str(n % 5),
        occurred_at=BASE_TIME + timedelta(seconds=n),
    )


class FakeEventSource(EventSource):
    def __init__(self, records=None):
        self.records: list[EventRecord] = list(records or [])
        self.calls: list[tuple[Optional[datetime], Optional[int]]] = []
        self.fail = False
        self.gate: Optional[asyncio.Event] = None
        self.active = 0
        self.max_active = 0

    def add(self, *records: EventRecord) -> None:
        self.records.extend(records)

    async def fetch(self, since=None, limit=None):
        self.calls.append((since, limit))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail:
                raise SourceError("connection reset by peer")
            rows = [r for r in self.records if since is None or r.occurred_at > since]
            rows.sort(key=lambda r: (r.occurred_at, r.id), reverse=True)
            return rows[:limit] if limit is not None else rows
        finally:
            self.active -= 1


class RecordingChannel:
    """Push channel that keeps every frame it was sent."""

    def __init__(self, fail: bool = False):
        self.sent: list[str] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("socket closed")
        self.sent.append(data)


@pytest.fixture()
def source():
    return FakeEventSource()


@pytest.fixture()
def test_settings():
    return Settings(poll_interval_seconds=60.0, bootstrap_window=100)


@pytest.fixture()
def app(test_settings, source):
    return create_app(test_settings, source=source)


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client over ASGI. The lifespan (dispatcher ticker) is not started."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
