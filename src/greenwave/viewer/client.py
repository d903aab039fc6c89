"""Reconnecting viewer — websocket client with fixed-delay reconnect.

Learn: The connection state machine is

  DISCONNECTED → CONNECTING → CONNECTED ─(close/error)─▶ DISCONNECTED
       ▲                                                    │
       └──────────────── sleep(reconnect_delay) ◀───────────┘

The delay is constant and retries never stop; there is no terminal
failure state. A fresh ViewerState is created on every connect, and
the server's catch-up frame repopulates it.

The websocket factory and sleep are injectable so the loop can be
driven without a network or real time.
"""

import asyncio
import enum
from typing import Callable, Optional, Protocol, Union

import structlog
import websockets
from pydantic import ValidationError

from greenwave.schemas.event import parse_batch
from greenwave.viewer.state import RenderFrame, ViewerState

logger = structlog.get_logger()


class ViewerConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Renderer(Protocol):
    """The UI side. A browser dashboard, a terminal, a test double."""

    def render(self, frame: RenderFrame) -> None: ...

    def connection_changed(self, state: ViewerConnectionState) -> None: ...


class ReconnectingViewer:
    def __init__(
        self,
        url: str,
        renderer: Optional[Renderer] = None,
        reconnect_delay: float = 5.0,
        feed_limit: int = 50,
        connect: Callable = websockets.connect,
        sleep: Callable = asyncio.sleep,
    ):
        self.url = url
        self.renderer = renderer
        self.reconnect_delay = reconnect_delay
        self.feed_limit = feed_limit
        self.state = ViewerConnectionState.DISCONNECTED
        self.view = ViewerState(feed_limit)
        self.connects = 0
        self._connect = connect
        self._sleep = sleep
        self._running = False

    def _set_state(self, state: ViewerConnectionState) -> None:
        self.state = state
        if self.renderer is not None:
            self.renderer.connection_changed(state)

    def handle_message(self, message: Union[str, bytes]) -> Optional[RenderFrame]:
        """Apply one pushed frame. Malformed frames are logged and dropped."""
        try:
            batch = parse_batch(message)
        except ValidationError as e:
            logger.warning("viewer.malformed_payload", errors=e.error_count())
            return None

        if not batch:
            return None

        frame = self.view.apply(batch)
        if self.renderer is not None:
            self.renderer.render(frame)
        return frame

    async def run(self) -> None:
        """Connect, consume, reconnect — until stop() is called."""
        self._running = True
        while self._running:
            self._set_state(ViewerConnectionState.CONNECTING)
            try:
                async with self._connect(self.url) as ws:
                    self.connects += 1
                    self.view = ViewerState(self.feed_limit)
                    self._set_state(ViewerConnectionState.CONNECTED)
                    logger.info("viewer.connected", url=self.url, connects=self.connects)
                    async for message in ws:
                        self.handle_message(message)
                logger.info("viewer.disconnected", url=self.url)
            except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
                logger.warning("viewer.connection_error", url=self.url, error=str(e))

            self._set_state(ViewerConnectionState.DISCONNECTED)
            if not self._running:
                break
            await self._sleep(self.reconnect_delay)

    def stop(self) -> None:
        self._running = False
