"""Greenwave CLI — run the broadcaster, watch the live feed, query the API.

Usage:
    greenwave serve                        # Run the API + websocket server
    greenwave watch                        # Live feed in the terminal (auto-reconnects)
    greenwave events --limit 20            # Most recent passages via REST
    greenwave health                       # Server health document
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from greenwave import __version__
from greenwave.viewer.client import ReconnectingViewer, ViewerConnectionState
from greenwave.viewer.state import RenderFrame

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3001"


def _api_url() -> str:
    return os.environ.get("GREENWAVE_API_URL", DEFAULT_API_URL).rstrip("/")


def _ws_url(api_url: str, path: str = "/ws") -> str:
    """http(s)://host → ws(s)://host/ws"""
    if api_url.startswith("https://"):
        return "wss://" + api_url[len("https://"):] + path
    if api_url.startswith("http://"):
        return "ws://" + api_url[len("http://"):] + path
    return api_url + path


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the greenwave server."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous click handler.

    Offloads to a thread when a loop is already running (CliRunner
    inside async tests).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table. columns: (header, dict_key, width)"""
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "—"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


_EVENT_COLUMNS = [
    ("ID", "id", 10),
    ("AMBULANCE", "entity_id", 12),
    ("LIGHT", "checkpoint_id", 8),
    ("OCCURRED AT", "occurred_at", 32),
]

_STATE_COLORS = {
    ViewerConnectionState.CONNECTED: "green",
    ViewerConnectionState.CONNECTING: "yellow",
    ViewerConnectionState.DISCONNECTED: "red",
}


class ConsoleRenderer:
    """Renders viewer frames as terminal lines."""

    def connection_changed(self, state: ViewerConnectionState) -> None:
        click.secho(f"[{state.value}]", fg=_STATE_COLORS[state], err=True)

    def render(self, frame: RenderFrame) -> None:
        click.secho(
            f"ambulances={frame.vehicle_count}  lights={frame.checkpoint_count}  "
            f"feed={len(frame.feed)}",
            bold=True,
        )
        # Oldest first so the newest passage ends up at the bottom of the terminal
        for record in reversed(frame.admitted):
            click.echo(
                f"  🚑 {record.entity_id} passed light {record.checkpoint_id}"
                f"  ({record.occurred_at.isoformat()})"
            )


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="greenwave")
def main():
    """Greenwave — live feed of ambulances passing traffic lights."""


# ---------------------------------------------------------------------------
# greenwave serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: GREENWAVE_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: GREENWAVE_PORT)")
def serve(host: Optional[str], port: Optional[int]):
    """Run the broadcaster: REST API, health, and the /ws push channel."""
    import uvicorn

    from greenwave.config import settings

    uvicorn.run(
        "greenwave.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# greenwave watch
# ---------------------------------------------------------------------------


@main.command()
@click.option("--url", default=None, help="Websocket URL (default: derived from GREENWAVE_API_URL)")
@click.option("--reconnect-delay", type=float, default=5.0, show_default=True,
              help="Seconds to wait before reconnecting")
def watch(url: Optional[str], reconnect_delay: float):
    """Stream new passages to the terminal, reconnecting forever."""
    from greenwave.config import settings
    from greenwave.log import configure_logging

    configure_logging("WARNING")
    viewer = ReconnectingViewer(
        url or _ws_url(_api_url(), settings.ws_path),
        renderer=ConsoleRenderer(),
        reconnect_delay=reconnect_delay,
        feed_limit=settings.feed_limit,
    )
    try:
        _run(viewer.run())
    except KeyboardInterrupt:
        viewer.stop()


# ---------------------------------------------------------------------------
# greenwave events
# ---------------------------------------------------------------------------


@main.command()
@click.option("--limit", "-n", type=int, default=None, help="Number of passages (default: server window)")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def events(limit: Optional[int], as_json: bool):
    """List the most recent passages."""
    _run(_events_impl(limit, as_json))


async def _events_impl(limit: Optional[int], as_json: bool):
    params = {"limit": limit} if limit else None
    async with _client() as c:
        r = await c.get("/api/v1/events", params=params)
        if r.status_code >= 500:
            click.secho("Event store unavailable (server returned 500)", fg="red", err=True)
            sys.exit(1)
        r.raise_for_status()
        rows = r.json()

    if as_json:
        click.echo(_pretty_json(rows))
        return
    if not rows:
        click.echo("No passages recorded.")
        return

    click.secho(f"Recent passages ({len(rows)}):", bold=True)
    click.echo()
    _print_table(rows, _EVENT_COLUMNS)


# ---------------------------------------------------------------------------
# greenwave health
# ---------------------------------------------------------------------------


@main.command()
def health():
    """Show server health, connected viewers, and dispatcher stats."""
    _run(_health_impl())


async def _health_impl():
    async with _client() as c:
        r = await c.get("/api/v1/health")
        r.raise_for_status()
        data = r.json()

    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"Status: {data.get('status')}", fg=color, bold=True)
    click.echo(_pretty_json(data))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
