"""Shared FastAPI dependencies."""

from fastapi import Request

from greenwave.broadcast.hub import BroadcastHub


def get_hub(request: Request) -> BroadcastHub:
    """The broadcast hub the app factory stored on app.state."""
    return request.app.state.hub
