"""CLI entrypoint for Star Cache."""

from __future__ import annotations

import json
import sys
from typing import NoReturn, Optional

import typer

from star_cache.core.config import Settings, get_settings
from star_cache.core.errors import StarCacheError
from star_cache.core.logging import configure_logging
from star_cache.db.store import clear_all
from star_cache.models.dto import StarredResult
from star_cache.session import StarCacheSession

app = typer.Typer(
    name="starc",
    help="Search your starred GitHub repositories by name, description, topic and README.",
)


@app.callback()
def main(
    ctx: typer.Context,
    token: Optional[str] = typer.Option(None, "--token", "-t", help='GitHub token (default is "GITHUB_TOKEN" env)'),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
) -> None:
    ctx.obj = {"token": token}
    configure_logging(level="DEBUG" if verbose else "WARNING", use_json=False, stream=sys.stderr)


def _settings(ctx: typer.Context) -> Settings:
    settings = get_settings()
    token = (ctx.obj or {}).get("token")
    if token:
        settings.github_token = token
    return settings


def _fail(exc: Exception) -> NoReturn:
    typer.secho(f"[err] {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _open_ready_session(ctx: typer.Context) -> StarCacheSession:
    session = StarCacheSession.open(_settings(ctx))
    try:
        session.create_index()
    except StarCacheError:
        session.close()
        raise
    return session


@app.command()
def sync(ctx: typer.Context) -> None:
    """Refresh the local cache from GitHub when it is due."""
    try:
        with _open_ready_session(ctx) as session:
            report = session.last_report
    except StarCacheError as exc:
        _fail(exc)
    typer.echo(json.dumps(report.to_dict(), indent=2))


@app.command()
def search(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Search text"),
    min_score: Optional[float] = typer.Option(None, "--min-score", "-m", help="Minimum relevance score"),
    size: Optional[int] = typer.Option(None, "--size", "-s", help="Max hits per query"),
) -> None:
    """Search starred repositories."""
    try:
        with _open_ready_session(ctx) as session:
            results = session.search(text, min_score=min_score, size=size)
    except StarCacheError as exc:
        _fail(exc)
    payload = [
        StarredResult.from_result(result, num).model_dump(mode="json")
        for num, result in enumerate(results, start=1)
    ]
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show cache statistics without contacting GitHub."""
    try:
        with StarCacheSession.open(_settings(ctx)) as session:
            session.load_cache()
            payload = session.stats()
    except StarCacheError as exc:
        _fail(exc)
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Clear all cached data."""
    if not yes and not typer.confirm("Do you want clear all of cached data?"):
        typer.secho("[cancel] clear all of cached data.", fg=typer.colors.YELLOW)
        return
    removed = clear_all(get_settings().db_path)
    typer.secho(
        "[success] clear all of cached data." if removed else "[success] nothing cached.",
        fg=typer.colors.GREEN,
    )


if __name__ == "__main__":
    app()
