"""Connection registry — the set of live viewer sessions.

Learn: A plain dict behind a threading.Lock. The lock is only ever held
for a dict operation or a copy, never across I/O, so the dispatcher
snapshots membership and then pushes without blocking joins or leaves.
"""

import threading
import uuid
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from greenwave.broadcast.session import ViewerSession


class ConnectionRegistry:
    def __init__(self):
        self._sessions: dict[str, "ViewerSession"] = {}
        self._lock = threading.Lock()

    def register(self, session: "ViewerSession") -> str:
        """Add a session and return its connection id."""
        connection_id = uuid.uuid4().hex
        with self._lock:
            self._sessions[connection_id] = session
        return connection_id

    def unregister(self, connection_id: str) -> bool:
        """Remove a session. Idempotent; returns whether it was present."""
        with self._lock:
            return self._sessions.pop(connection_id, None) is not None

    def snapshot(self) -> list[tuple[str, "ViewerSession"]]:
        """Copy of current membership, safe to iterate while others join/leave."""
        with self._lock:
            return list(self._sessions.items())

    def __contains__(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
