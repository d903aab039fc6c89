"""Viewer session lifecycle tests.

Learn: CONNECTING → OPEN → CLOSED. Whatever closes a session (explicit
close, failed push, failed bootstrap), it ends up unregistered exactly
once and never sends again.
"""

import asyncio
import json

import pytest

from greenwave.broadcast.registry import ConnectionRegistry
from greenwave.broadcast.session import SessionState, ViewerSession
from tests.conftest import RecordingChannel, make_event


def _bootstrap_with(*records):
    async def bootstrap():
        return list(records)
    return bootstrap


@pytest.mark.asyncio
async def test_open_registers_and_sends_bootstrap():
    registry = ConnectionRegistry()
    channel = RecordingChannel()
    session = ViewerSession(channel, registry)
    assert session.state is SessionState.CONNECTING

    ok = await session.open(_bootstrap_with(make_event(2), make_event(1)))

    assert ok is True
    assert session.state is SessionState.OPEN
    assert session.connection_id in registry
    assert session.joined_at is not None
    assert len(channel.sent) == 1
    assert [r["id"] for r in json.loads(channel.sent[0])] == [2, 1]


@pytest.mark.asyncio
async def test_open_with_no_recent_data_sends_nothing():
    registry = ConnectionRegistry()
    channel = RecordingChannel()
    session = ViewerSession(channel, registry)

    assert await session.open(_bootstrap_with()) is True
    assert channel.sent == []
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_failed_bootstrap_push_closes_and_unregisters():
    registry = ConnectionRegistry()
    session = ViewerSession(RecordingChannel(fail=True), registry)

    ok = await session.open(_bootstrap_with(make_event(1)))

    assert ok is False
    assert session.state is SessionState.CLOSED
    assert session.close_reason == "push_failed"
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_send_failure_closes_session():
    registry = ConnectionRegistry()
    channel = RecordingChannel()
    session = ViewerSession(channel, registry)
    await session.open(_bootstrap_with())

    channel.fail = True
    assert await session.send("[]") is False
    assert session.state is SessionState.CLOSED
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_closed_session_never_sends():
    registry = ConnectionRegistry()
    channel = RecordingChannel()
    session = ViewerSession(channel, registry)
    await session.open(_bootstrap_with())

    session.close()
    assert await session.send("[]") is False
    assert channel.sent == []


@pytest.mark.asyncio
async def test_close_is_idempotent_and_signals_waiters():
    registry = ConnectionRegistry()
    session = ViewerSession(RecordingChannel(), registry)
    await session.open(_bootstrap_with())

    waiter = asyncio.create_task(session.wait_closed())
    session.close(reason="disconnected")
    session.close(reason="again")
    await asyncio.wait_for(waiter, timeout=1)

    assert session.close_reason == "disconnected"
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_close_before_open_is_terminal():
    registry = ConnectionRegistry()
    session = ViewerSession(RecordingChannel(), registry)
    session.close()

    assert session.state is SessionState.CLOSED
    with pytest.raises(RuntimeError):
        await session.open(_bootstrap_with())
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_push_during_join_is_delivered_after_bootstrap():
    registry = ConnectionRegistry()
    channel = RecordingChannel()
    session = ViewerSession(channel, registry)
    release = asyncio.Event()

    async def slow_bootstrap():
        await release.wait()
        return [make_event(1)]

    opening = asyncio.create_task(session.open(slow_bootstrap))
    await asyncio.sleep(0)
    assert session.connection_id in registry

    # A tick reaches the session while its bootstrap is still loading
    tick_push = asyncio.create_task(session.send('["tick"]'))
    await asyncio.sleep(0)
    release.set()
    await opening
    await tick_push

    assert len(channel.sent) == 2
    assert json.loads(channel.sent[0])[0]["id"] == 1
    assert channel.sent[1] == '["tick"]'


@pytest.mark.asyncio
async def test_slow_bootstrap_times_out_and_joins_empty():
    registry = ConnectionRegistry()
    channel = RecordingChannel()
    session = ViewerSession(channel, registry)
    never = asyncio.Event()

    async def stuck_bootstrap():
        await never.wait()
        return [make_event(1)]

    opening = asyncio.create_task(session.open(stuck_bootstrap, bootstrap_timeout=0.05))
    await asyncio.sleep(0)
    tick = asyncio.create_task(session.send(json.dumps([{"id": 9}])))

    ok = await asyncio.wait_for(opening, timeout=1)
    delivered = await asyncio.wait_for(tick, timeout=1)

    assert ok is True
    assert delivered is True
    assert session.state is SessionState.OPEN
    assert session.connection_id in registry
    assert [json.loads(m)[0]["id"] for m in channel.sent] == [9]
