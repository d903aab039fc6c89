"""Viewer session — server-side state for one connected dashboard.

Learn: An explicit state machine instead of scattered callbacks:

  CONNECTING ──open()──▶ OPEN ──close()──▶ CLOSED
       └──────────────close()──────────────┘

open() registers the session and pushes the bootstrap window. Any push
failure, explicit close, or transport error calls close(), which is the
only way out of a non-terminal state and always unregisters. close() is
synchronous and idempotent so it can run from inside error handling.

Pushes to one session are serialized by a per-session lock. open()
holds it while fetching and sending the bootstrap, so a tick that
lands mid-join is delivered after the bootstrap, never before.

That tick waits on the lock, which keeps the dispatcher in flight and
makes later ticks skip for every viewer. The bootstrap fetch is
therefore bounded by `bootstrap_timeout`; a join that times out
skips the catch-up frame and receives only what later ticks deliver.
"""

import asyncio
import enum
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Protocol

import structlog

from greenwave.broadcast.registry import ConnectionRegistry
from greenwave.schemas.event import EventRecord, serialize_batch

logger = structlog.get_logger()


class PushChannel(Protocol):
    """What a session needs from the transport. Starlette's WebSocket fits."""

    async def send_text(self, data: str) -> None: ...


class SessionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ViewerSession:
    def __init__(self, channel: PushChannel, registry: ConnectionRegistry):
        self.channel = channel
        self.registry = registry
        self.state = SessionState.CONNECTING
        self.connection_id: Optional[str] = None
        self.joined_at: Optional[datetime] = None
        self.close_reason: Optional[str] = None
        self._send_lock = asyncio.Lock()
        self._closed = asyncio.Event()

    async def open(
        self,
        bootstrap: Callable[[], Awaitable[list[EventRecord]]],
        bootstrap_timeout: Optional[float] = None,
    ) -> bool:
        """Enter OPEN after the handshake and send the catch-up window.

        Returns False if the bootstrap push failed (the session is then
        already closed and unregistered).
        """
        if self.state is not SessionState.CONNECTING:
            raise RuntimeError(f"cannot open a session in state {self.state.value}")

        async with self._send_lock:
            self.joined_at = datetime.now(timezone.utc)
            self.connection_id = self.registry.register(self)
            self.state = SessionState.OPEN
            logger.info(
                "session.opened",
                connection_id=self.connection_id,
                clients=len(self.registry),
            )

            try:
                batch = await asyncio.wait_for(bootstrap(), timeout=bootstrap_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "session.bootstrap_timeout",
                    connection_id=self.connection_id,
                    timeout=bootstrap_timeout,
                )
                batch = []
            if batch and self.state is SessionState.OPEN:
                await self._push(serialize_batch(batch))

        return self.state is SessionState.OPEN

    async def send(self, payload: str) -> bool:
        """Push one frame. Returns False (and closes) if it could not be sent."""
        if self.state is not SessionState.OPEN:
            return False
        async with self._send_lock:
            if self.state is not SessionState.OPEN:
                return False
            return await self._push(payload)

    async def _push(self, payload: str) -> bool:
        try:
            await self.channel.send_text(payload)
        except Exception as e:
            logger.warning(
                "session.push_failed",
                connection_id=self.connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.close(reason="push_failed")
            return False
        return True

    def close(self, reason: str = "closed") -> None:
        """Terminal transition. Unregisters; safe to call any number of times."""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self.close_reason = reason
        if self.connection_id is not None:
            self.registry.unregister(self.connection_id)
        self._closed.set()
        logger.info(
            "session.closed",
            connection_id=self.connection_id,
            reason=reason,
            clients=len(self.registry),
        )

    async def wait_closed(self) -> None:
        await self._closed.wait()
