"""API route aggregation.

All routers registered here get mounted in main.py. Viewers are not
authenticated, so every route is open.
"""

from fastapi import APIRouter

from greenwave.api.events import router as events_router
from greenwave.api.health import router as health_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(events_router, tags=["events"])
