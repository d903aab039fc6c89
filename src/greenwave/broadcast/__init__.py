"""Broadcast engine — watermark poller, registry, sessions, dispatcher.

Learn: Data flows one way:
  dispatcher tick → poller.fetch_new() → source query → batch
  → serialized once → pushed to every session in the registry
"""

from greenwave.broadcast.dispatcher import BroadcastDispatcher, DispatcherStats
from greenwave.broadcast.hub import BroadcastHub
from greenwave.broadcast.poller import WatermarkPoller
from greenwave.broadcast.registry import ConnectionRegistry
from greenwave.broadcast.session import PushChannel, SessionState, ViewerSession

__all__ = [
    "BroadcastDispatcher",
    "BroadcastHub",
    "ConnectionRegistry",
    "DispatcherStats",
    "PushChannel",
    "SessionState",
    "ViewerSession",
    "WatermarkPoller",
]
