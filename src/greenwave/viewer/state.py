"""Viewer render state — what a dashboard derives from each pushed batch.

Learn: Two kinds of output per batch:

1. Full-state views (counts, table, checkpoint and vehicle grids) are
   recomputed from the batch alone every time. Redrawing them twice
   gives the same picture.
2. The scrolling feed is incremental. Only records strictly newer than
   last_rendered_at are admitted, prepended in batch order, and the
   feed is cut back to `feed_limit` from the tail.

This state lives only in the viewer process and is rebuilt from scratch
on every reconnect.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from greenwave.schemas.event import EventRecord

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class RenderFrame:
    vehicle_count: int
    checkpoint_count: int
    table: tuple[EventRecord, ...]
    checkpoints: tuple[str, ...]
    vehicles: tuple[str, ...]
    feed: tuple[EventRecord, ...]
    admitted: tuple[EventRecord, ...]


def _distinct(values) -> tuple[str, ...]:
    """Unique values in order of first appearance."""
    return tuple(dict.fromkeys(values))


class ViewerState:
    def __init__(self, feed_limit: int = 50):
        self.feed_limit = feed_limit
        self.last_rendered_at: Optional[datetime] = None
        self.feed: list[EventRecord] = []

    def apply(self, batch: Sequence[EventRecord]) -> RenderFrame:
        """Fold one batch into the state and return what to draw."""
        checkpoints = _distinct(record.checkpoint_id for record in batch)
        vehicles = _distinct(record.entity_id for record in batch)

        cutoff = self.last_rendered_at or EPOCH
        admitted = [record for record in batch if record.occurred_at > cutoff]
        if admitted:
            self.feed = (admitted + self.feed)[: self.feed_limit]
            self.last_rendered_at = max(record.occurred_at for record in admitted)

        return RenderFrame(
            vehicle_count=len(vehicles),
            checkpoint_count=len(checkpoints),
            table=tuple(batch),
            checkpoints=checkpoints,
            vehicles=vehicles,
            feed=tuple(self.feed),
            admitted=tuple(admitted),
        )
