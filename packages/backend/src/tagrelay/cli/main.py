"""tagrelay CLI — run the relay and talk to a running one.

Usage:
    tagrelay serve --port 3000                    # Run the relay (uvicorn)
    tagrelay health                               # Health document
    tagrelay stats                                # Connection + delivery counters
    tagrelay submit job-42 -f data=x              # Broadcast an item
    tagrelay submit job-42 --json '{"lines": [1, 2]}'
"""

from __future__ import annotations

import json
import os
import sys
from typing import Optional

import click
import httpx

from tagrelay import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url() -> str:
    return os.environ.get("TAGRELAY_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.Client:
    """Build an HTTP client pointed at the relay."""
    return httpx.Client(base_url=_api_url(), timeout=10.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


def _parse_fields(fields: tuple[str, ...]) -> dict:
    """Turn ("key=value", ...) into a dict. Values are JSON if they parse."""
    out: dict = {}
    for pair in fields:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--field")
        try:
            out[key] = json.loads(value)
        except json.JSONDecodeError:
            out[key] = value
    return out


def _get(path: str) -> dict:
    try:
        with _client() as c:
            r = c.get(path)
            r.raise_for_status()
            return r.json()
    except httpx.HTTPError as e:
        _fail(f"{_api_url()}{path}: {e}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="tagrelay")
def main():
    """tagrelay — correlation-routed broadcast relay."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: TAGRELAY_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: TAGRELAY_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the relay server."""
    import uvicorn

    from tagrelay.config import settings

    uvicorn.run(
        "tagrelay.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,  # logging is configured by the app (structlog)
    )


@main.command()
def health():
    """Show the relay's health document."""
    data = _get("/api/v1/health")
    color = "green" if data.get("status") == "healthy" else "yellow"
    click.secho(f"{data.get('status', 'unknown')}  (v{data.get('version', '?')})", fg=color, bold=True)
    click.echo(f"  Redis:        {data.get('redis', '—')}")
    click.echo(f"  Connections:  {data.get('connections', 0)} ({data.get('bound_connections', 0)} bound)")


@main.command()
def stats():
    """Show connection and delivery counters."""
    click.echo(_pretty_json(_get("/api/v1/stats")))


@main.command()
@click.argument("correlation_id")
@click.option("--field", "-f", "fields", multiple=True, help="Payload field as key=value (repeatable)")
@click.option("--json", "json_body", help="Payload fields as a JSON object")
def submit(correlation_id: str, fields: tuple[str, ...], json_body: Optional[str]):
    """Broadcast an item to every consumer bound to CORRELATION_ID."""
    payload: dict = {}
    if json_body:
        try:
            payload = json.loads(json_body)
        except json.JSONDecodeError as e:
            raise click.BadParameter(str(e), param_hint="--json")
        if not isinstance(payload, dict):
            raise click.BadParameter("must be a JSON object", param_hint="--json")
    payload.update(_parse_fields(fields))
    payload["correlationId"] = correlation_id

    try:
        with _client() as c:
            r = c.post("/api/v1/items", json=payload)
            r.raise_for_status()
            result = r.json()
    except httpx.HTTPError as e:
        _fail(f"submit failed: {e}")

    if not result.get("accepted", True):
        _fail(f"item rejected: {result.get('detail')}")

    count = result["delivered_count"]
    color = "green" if count else "yellow"
    click.secho(f"Delivered to {count} consumer(s) bound to {correlation_id!r}", fg=color)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
