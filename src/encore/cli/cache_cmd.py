"""CLI command for dropping cached entries by hand.

Usage:
    encore invalidate "users:performers_p*"
    encore invalidate --key "search_performers:3f2a..."
"""

from __future__ import annotations

import asyncio

import typer

from encore.cache.invalidation import CacheInvalidator
from encore.cache.redis import close_redis, get_redis

app = typer.Typer(help="Drop cached entries")


async def _invalidate(pattern: str | None, keys: list[str]) -> int:
    try:
        invalidator = CacheInvalidator(await get_redis())
        removed = await invalidator.invalidate_keys(keys) if keys else 0
        if pattern:
            removed += await invalidator.invalidate_pattern(pattern)
        return removed
    finally:
        await close_redis()


@app.callback(invoke_without_command=True)
def invalidate(
    pattern: str | None = typer.Argument(None, help="Glob pattern, e.g. 'users:performers_p*'"),
    key: list[str] = typer.Option([], "--key", "-k", help="Exact key to delete (repeatable)"),
) -> None:
    """Delete cache entries by glob pattern and/or exact key."""
    if not pattern and not key:
        typer.echo("Nothing to invalidate: pass a pattern or --key", err=True)
        raise typer.Exit(code=1)
    removed = asyncio.run(_invalidate(pattern, key))
    typer.echo(f"Removed {removed} key(s)")
