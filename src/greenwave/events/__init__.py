"""Event source adapters — where passage events come from."""

from greenwave.events.source import EventSource, SqlEventSource

__all__ = ["EventSource", "SqlEventSource"]
