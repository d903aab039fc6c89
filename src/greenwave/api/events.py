"""REST fetch of the most recent passages.

Learn: For consumers that don't want the push channel. It reads the
same bootstrap window a late-joining viewer gets and never touches the
broadcast watermark — calling it cannot steal events from the next tick.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from greenwave.api.dependencies import get_hub
from greenwave.broadcast.hub import BroadcastHub
from greenwave.exceptions import SourceError
from greenwave.schemas.event import EventRecord

logger = structlog.get_logger()
router = APIRouter()


@router.get("/events", response_model=list[EventRecord])
async def list_recent_events(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    hub: BroadcastHub = Depends(get_hub),
):
    """Most recent passages, newest first. 500 with [] if the store fails."""
    window = limit or hub.poller.bootstrap_window
    try:
        return await hub.source.fetch(limit=window)
    except SourceError as e:
        logger.error("events.fetch_failed", error=str(e))
        return JSONResponse(status_code=500, content=[])
