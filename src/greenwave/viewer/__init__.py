"""Reconnecting viewer client — the consuming side of the push channel."""

from greenwave.viewer.client import ReconnectingViewer, Renderer, ViewerConnectionState
from greenwave.viewer.state import RenderFrame, ViewerState

__all__ = [
    "ReconnectingViewer",
    "RenderFrame",
    "Renderer",
    "ViewerConnectionState",
    "ViewerState",
]
