"""RescueTrack CLI — run the server and do operator chores.

Usage:
    rescuetrack serve --reload                  # Run the API with uvicorn
    rescuetrack init-db                         # Create every table (dev bootstrap)
    rescuetrack sweep-tokens                    # Remove expired refresh tokens once
    rescuetrack stats                           # Public dashboard numbers from a running API
"""

from __future__ import annotations

import asyncio
import os
import sys

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("RESCUETRACK_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the RescueTrack backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=30.0)


def _print_counts(title: str, counts: dict[str, int]) -> None:
    click.secho(title, bold=True)
    if not counts:
        click.echo("  (none)")
        return
    for key, n in sorted(counts.items(), key=lambda kv: -kv[1]):
        click.echo(f"  {key:20s} {n}")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="rescuetrack")
def main():
    """RescueTrack — animal rescue case tracking backend."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: RESCUETRACK_HOST)")
@click.option("--port", default=None, type=int, help="Port (default: RESCUETRACK_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the API server."""
    import uvicorn

    from rescuetrack.config import settings

    uvicorn.run(
        "rescuetrack.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command("init-db")
def init_db():
    """Create every table. Production databases use Alembic instead."""
    from rescuetrack.db.engine import create_all, engine

    async def _impl():
        await create_all()
        await engine.dispose()

    asyncio.run(_impl())
    click.secho("Tables created.", fg="green")


@main.command("sweep-tokens")
def sweep_tokens():
    """Delete expired refresh tokens once and report how many went."""
    from rescuetrack.db.engine import engine
    from rescuetrack.services.token_sweeper import sweep_once

    async def _impl() -> int:
        try:
            return await sweep_once()
        finally:
            await engine.dispose()

    removed = asyncio.run(_impl())
    click.echo(f"Removed {removed} expired refresh token(s).")


@main.command()
def stats():
    """Show public case statistics from a running API."""
    asyncio.run(_stats_impl())


async def _stats_impl():
    async with _client() as c:
        try:
            r = await c.get("/api/v1/stats")
            r.raise_for_status()
        except httpx.HTTPError as e:
            click.secho(f"Could not fetch stats from {_api_url()}: {e}", fg="red", err=True)
            sys.exit(1)
        data = r.json()

    click.secho("RescueTrack stats", bold=True)
    click.echo(f"  Active cases:        {data['active_cases']}")
    click.echo(f"  Rescued this month:  {data['rescued_this_month']}")
    click.echo(f"  In foster care:      {data['in_foster_care']}")
    click.echo(f"  Adopted this month:  {data['adopted_this_month']}")
    click.echo()
    _print_counts("By urgency (active)", data.get("by_urgency", {}))
    _print_counts("By status", data.get("by_status", {}))
    _print_counts("By species", data.get("by_species", {}))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
