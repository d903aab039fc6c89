"""WebSocket endpoint — one ViewerSession per connected dashboard.

Learn: Two things can end a connection, so we wait on both:
1. Client listener — drains inbound frames until the viewer disconnects
2. Session closed — a push failed and the dispatcher dropped the session

Whichever finishes first, the other is cancelled and the session is
closed (which unregisters it) before the handler returns.
"""

import asyncio

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from greenwave.broadcast.hub import BroadcastHub

logger = structlog.get_logger()


async def viewer_websocket(websocket: WebSocket):
    """Push channel for dashboards."""
    hub: BroadcastHub = websocket.app.state.hub

    await websocket.accept()
    session = await hub.join(websocket)

    async def client_listener():
        """Inbound frames are not part of the protocol; ignore until disconnect."""
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    return
        except WebSocketDisconnect:
            pass

    client_task = asyncio.create_task(client_listener())
    closed_task = asyncio.create_task(session.wait_closed())

    try:
        done, pending = await asyncio.wait(
            [client_task, closed_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        session.close(reason="disconnected")
        if websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except (RuntimeError, OSError):
                # Transport already gone
                pass


def build_router(path: str = "/ws") -> APIRouter:
    router = APIRouter()
    router.add_api_websocket_route(path, viewer_websocket)
    return router
