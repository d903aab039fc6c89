"""Health check endpoint.

Learn: Reports how many viewers are connected and whether the event
store has been reached. A store outage is "degraded", not an error;
the process keeps serving and retries in the background.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from greenwave import __version__
from greenwave.api.dependencies import get_hub
from greenwave.broadcast.hub import BroadcastHub

router = APIRouter()


@router.get("/health")
async def health_check(hub: BroadcastHub = Depends(get_hub)):
    """Server status, connected viewers, and broadcaster state."""
    watermark = hub.poller.watermark
    return {
        "status": "healthy" if hub.source.connected else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "clients": len(hub.registry),
        "version": __version__,
        "source": "connected" if hub.source.connected else "unavailable",
        "watermark": watermark.isoformat() if watermark else None,
        "dispatcher": hub.dispatcher.get_stats(),
    }
