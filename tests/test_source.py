"""SQL event source tests.

Learn: No database here. The statement is compiled against the
PostgreSQL dialect to check its shape, and the session factory is
swapped for a stub to check row mapping and error wrapping.
"""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine

from greenwave.events.source import SqlEventSource, build_events_query
from greenwave.exceptions import SourceError, SourceUnavailable


def _sql(stmt) -> str:
    # identifier quoting varies by dialect version
    return str(stmt.compile(dialect=postgresql.dialect())).replace("\"", "")


def test_bootstrap_query_is_top_n_newest_first():
    sql = _sql(build_events_query(limit=100))
    assert "JOIN ambulances ON ambulance_events.ambulance_id = ambulances.id" in sql
    assert "ORDER BY ambulance_events.timestamp DESC, ambulance_events.id DESC" in sql
    assert "LIMIT" in sql
    assert "WHERE" not in sql


def test_since_query_is_strictly_greater_and_unbounded():
    sql = _sql(build_events_query(since=datetime(2024, 1, 1, tzinfo=timezone.utc)))
    assert "WHERE ambulance_events.timestamp > " in sql
    assert ">=" not in sql
    assert "LIMIT" not in sql


class _StubSession:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.statements = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, stmt):
        self.statements.append(stmt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(all=lambda: self.rows)


@pytest.fixture()
def sql_source():
    engine = create_async_engine("postgresql+asyncpg://u:p@localhost:5432/none")
    return SqlEventSource(engine, retry_delay=0.0)


@pytest.mark.asyncio
async def test_fetch_before_connect_raises_unavailable(sql_source):
    assert sql_source.connected is False
    with pytest.raises(SourceUnavailable):
        await sql_source.fetch(limit=10)


@pytest.mark.asyncio
async def test_rows_are_mapped_to_event_records(sql_source):
    stub = _StubSession(rows=[
        SimpleNamespace(id=7, plate="ABC-123", traffic_light_id=4,
                        timestamp=datetime(2024, 5, 1, 8, 0)),
    ])
    sql_source._session_factory = lambda: stub
    sql_source._connected = True

    records = await sql_source.fetch(limit=10)

    assert len(records) == 1
    record = records[0]
    assert (record.id, record.entity_id, record.checkpoint_id) == (7, "ABC-123", "4")
    assert record.occurred_at.tzinfo is timezone.utc


@pytest.mark.asyncio
async def test_driver_errors_become_source_errors(sql_source):
    error = OperationalError("SELECT", {}, ConnectionResetError("reset"))
    sql_source._session_factory = lambda: _StubSession(error=error)
    sql_source._connected = True

    with pytest.raises(SourceError):
        await sql_source.fetch(limit=10)


class _FlakyEngine:
    """engine.connect() fails `failures` times, then succeeds."""

    def __init__(self, failures):
        self.failures = failures
        self.attempts = 0

    def connect(self):
        engine = self

        class _Conn:
            async def __aenter__(self):
                engine.attempts += 1
                if engine.attempts <= engine.failures:
                    raise OSError("connection refused")
                return self

            async def __aexit__(self, *exc):
                return False

            async def execute(self, stmt):
                return None

        return _Conn()

    async def dispose(self):
        pass


@pytest.mark.asyncio
async def test_connect_retries_until_store_answers():
    engine = _FlakyEngine(failures=3)
    source = SqlEventSource(engine, retry_delay=0.0)

    await source.connect()

    assert source.connected is True
    assert engine.attempts == 4

    await source.close()
    assert source.connected is False
