"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The broadcast hub is built here and stored on app.state so
routes reach it through dependencies; the lifespan only starts and
stops its background tasks (store connection loop + dispatcher).

Pass `source=` to run against anything other than the SQL store
(tests use an in-memory source).
"""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from greenwave import __version__
from greenwave.api import api_router
from greenwave.broadcast.hub import BroadcastHub
from greenwave.config import Settings, settings as default_settings
from greenwave.events.source import EventSource, SqlEventSource
from greenwave.log import configure_logging

logger = structlog.get_logger()


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Central sink for errors nobody awaited. Logs; never stops the process."""
    error = context.get("exception")
    logger.error(
        "process.unhandled_error",
        message=context.get("message"),
        error=str(error) if error else None,
        error_type=type(error).__name__ if error else None,
    )


def _dashboard_route(root: Path):
    """Serve dashboard assets; any other non-API path gets index.html (SPA routing)."""
    index = root / "index.html"

    async def dashboard(path: str):
        if path == "api" or path.startswith("api/"):
            raise HTTPException(status_code=404, detail="Not Found")
        candidate = (root / path).resolve()
        if path and candidate.is_relative_to(root) and candidate.is_file():
            return FileResponse(candidate)
        if index.is_file():
            return FileResponse(index)
        raise HTTPException(status_code=404, detail="Not Found")

    return dashboard


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    config: Settings = app.state.settings
    hub: BroadcastHub = app.state.hub

    logger.info(
        "greenwave.starting",
        version=__version__,
        environment=config.environment,
        port=config.port,
        poll_interval=config.poll_interval_seconds,
    )
    asyncio.get_running_loop().set_exception_handler(_log_unhandled)

    await hub.start()

    yield

    logger.info("greenwave.shutdown")
    await hub.stop()


def create_app(
    config: Optional[Settings] = None,
    source: Optional[EventSource] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or default_settings
    configure_logging(config.log_level, config.log_json)

    if source is None:
        from greenwave.db.engine import create_engine

        source = SqlEventSource(
            create_engine(config),
            retry_delay=config.db_connect_retry_seconds,
        )

    app = FastAPI(
        title="Greenwave",
        description="Live feed of ambulances passing traffic lights",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.hub = BroadcastHub(
        source,
        poll_interval=config.poll_interval_seconds,
        bootstrap_window=config.bootstrap_window,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from greenwave.middleware.request_id import RequestIdMiddleware
    from greenwave.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(api_router)

    from greenwave.realtime.websocket import build_router
    app.include_router(build_router(config.ws_path))

    # Dashboard assets last, so API and websocket routes win
    if config.static_dir:
        static_path = Path(config.static_dir)
        if static_path.is_dir():
            app.add_api_route(
                "/{path:path}",
                _dashboard_route(static_path.resolve()),
                methods=["GET"],
                include_in_schema=False,
            )
        else:
            logger.warning("greenwave.static_dir_missing", path=str(static_path))

    return app


# Default app instance (used by uvicorn: greenwave.main:app)
app = create_app()
