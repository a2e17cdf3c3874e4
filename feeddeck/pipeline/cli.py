"""CLI interface for feeddeck.

Usage:
    python -m feeddeck.pipeline.cli add UC_x5XG1OV2P6uZZ5FSM9Ttw --name "Google for Developers"
    python -m feeddeck.pipeline.cli import
    python -m feeddeck.pipeline.cli sync --all
    python -m feeddeck.pipeline.cli more 1
    python -m feeddeck.pipeline.cli column 1 --offset 10
    python -m feeddeck.pipeline.cli search "python talks" --type playlist
    python -m feeddeck.pipeline.cli status
    python -m feeddeck.pipeline.cli vacuum
"""

from __future__ import annotations

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from feeddeck.config import DEFAULT_CONFIG_PATH, Settings, load_config
from feeddeck.connectors.base import SourceKind
from feeddeck.connectors.factory import build_clients
from feeddeck.connectors.youtube import YouTubeCatalog
from feeddeck.errors import FeedDeckError
from feeddeck.pipeline.browse import ColumnPage, FeedBrowser
from feeddeck.pipeline.reconciler import SyncReconciler
from feeddeck.pipeline.runner import SyncRunner
from feeddeck.storage.db import DatabaseManager
from feeddeck.storage.models import FeedSource, SyncSummary

console = Console()
logger = logging.getLogger("feeddeck")


class Engine:
    """Everything a command needs, opened together."""

    def __init__(self, settings: Settings, db: DatabaseManager, catalog: YouTubeCatalog, reconciler: SyncReconciler):
        self.settings = settings
        self.db = db
        self.catalog = catalog
        self.reconciler = reconciler
        self.runner = SyncRunner(
            reconciler,
            attempts=int(settings.retries),
            timeout=float(settings.sync_timeout_seconds),
        )
        self.browser = FeedBrowser(
            db,
            reconciler,
            page_size=int(settings.column_page_size),
            sync_timeout=float(settings.sync_timeout_seconds),
        )


@asynccontextmanager
async def open_db(settings: Settings) -> AsyncIterator[DatabaseManager]:
    db = DatabaseManager(settings.db_path)
    await db.initialize()
    try:
        yield db
    finally:
        await db.close()


@asynccontextmanager
async def open_engine(settings: Settings) -> AsyncIterator[Engine]:
    catalog, classifier = build_clients(settings)
    async with open_db(settings) as db, catalog, classifier:
        reconciler = SyncReconciler(catalog, classifier, db, page_size=int(settings.page_size))
        yield Engine(settings, db, catalog, reconciler)


def run_async(coro):
    """Run a command coroutine, printing feeddeck errors instead of tracebacks."""
    try:
        return asyncio.run(coro)
    except FeedDeckError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _print_summary(summary: SyncSummary, sources: List[FeedSource]) -> None:
    names = {s.id: s.name for s in sources}
    table = Table(title="Sync Results")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Source", style="cyan")
    table.add_column("Fetched", justify="right")
    table.add_column("Inserted", justify="right", style="green")
    table.add_column("Duplicates", justify="right", style="yellow")
    table.add_column("Shorts", justify="right")
    table.add_column("Cursor")
    table.add_column("Time", justify="right")

    for r in summary.results:
        table.add_row(
            str(r.source_id),
            names.get(r.source_id, "?"),
            str(r.fetched),
            str(r.inserted),
            str(r.duplicates),
            str(r.shorts),
            f"[red]{r.error_message[:50]}" if r.error_message else str(r.cursor or ""),
            f"{r.duration_seconds:.1f}s",
        )
    table.add_section()
    table.add_row(
        "",
        "[bold]Total",
        f"[bold]{summary.total_fetched}",
        f"[bold green]{summary.total_inserted}",
        f"[bold yellow]{summary.total_duplicates}",
        "",
        f"[bold red]{summary.total_errors} errors" if summary.total_errors else "",
        f"[bold]{summary.duration_seconds:.1f}s",
    )
    console.print(table)


def _print_column(source: FeedSource, page: ColumnPage) -> None:
    table = Table(title=f"{source.name} ({source.kind.value})")
    table.add_column("#", style="dim", width=4)
    table.add_column("Video ID", style="cyan")
    table.add_column("Title", max_width=60)
    table.add_column("Duration")
    table.add_column("Published", width=12)
    table.add_column("Short")

    start = page.next_offset - len(page.videos)
    for i, v in enumerate(page.videos, start + 1):
        table.add_row(
            str(i),
            v.external_id,
            v.title[:60],
            v.duration,
            v.published_at.strftime("%Y-%m-%d") if v.published_at else "?",
            "[magenta]yes" if v.is_short else "",
        )
    console.print(table)

    if page.has_more_local:
        console.print(f"More stored videos: --offset {page.next_offset}")
    elif page.can_fetch_more:
        console.print(f"End of stored videos. Fetch more with: more {source.id}")
    else:
        console.print("[dim]No more videos for this source.")


async def _select_sources(db: DatabaseManager, all_sources: bool, source_id: Optional[int]) -> List[FeedSource]:
    if all_sources:
        return await db.list_sources()
    assert source_id is not None
    return [await db.require_source(source_id)]


@click.group()
@click.option("--db", default=None, help="Database path (overrides config)")
@click.option("--config", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option("--retries", type=int, default=None, help="Fetch attempts per source (overrides config)")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, db: Optional[str], config: str, retries: Optional[int], verbose: bool):
    """feeddeck: follow channels and playlists as an incremental feed."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    try:
        settings = load_config(config)
    except FeedDeckError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    if db:
        settings.db_path = db
    if retries is not None:
        settings.retries = max(1, retries)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("external_id")
@click.option("--type", "kind", type=click.Choice(["channel", "playlist"]), default="channel")
@click.option("--name", default=None, help="Display name (defaults to the ID)")
@click.option("--hide-shorts", is_flag=True, help="Hide Shorts in this source's column")
@click.option("--no-sync", is_flag=True, help="Do not fetch the first page now")
@click.pass_context
def add(ctx, external_id: str, kind: str, name: Optional[str], hide_shorts: bool, no_sync: bool):
    """Follow a channel or playlist."""
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_engine(settings) as engine:
            source = await engine.db.add_source(
                FeedSource(
                    id=None,
                    external_id=external_id,
                    kind=SourceKind.parse(kind),
                    name=name or external_id,
                    hide_shorts=hide_shorts,
                )
            )
            console.print(f"[green]Following[/green] {source.name} (id {source.id})")
            if no_sync or source.cursor.is_exhausted:
                return
            with console.status("[bold green]Fetching first page..."):
                result = await engine.runner.sync(source)
            console.print(
                f"Inserted {result.inserted} videos ({result.shorts} shorts), cursor {result.cursor}"
            )

    run_async(_run())


@cli.command(name="import")
@click.pass_context
def import_sources(ctx):
    """Add every source listed in config.yaml."""
    settings: Settings = ctx.obj["settings"]
    if not settings.sources:
        console.print("[yellow]No sources in config.[/yellow]")
        return

    async def _run():
        async with open_db(settings) as db:
            for cfg in settings.sources:
                source = await db.add_source(FeedSource.from_config(cfg))
                console.print(f"  {source.id}: {source.name} ({source.kind.value})")
        console.print(f"[green]Imported {len(settings.sources)} source(s).[/green]")

    run_async(_run())


@cli.command()
@click.argument("source_id", type=int, required=False)
@click.option("--all", "all_sources", is_flag=True, help="Sync every source")
@click.pass_context
def sync(ctx, source_id: Optional[int], all_sources: bool):
    """Fetch the next remote page for sources that have more."""
    if not all_sources and source_id is None:
        console.print("[red]Error:[/red] Specify --all or a source ID")
        sys.exit(1)
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_engine(settings) as engine:
            sources = await _select_sources(engine.db, all_sources, source_id)
            with console.status("[bold green]Syncing..."):
                summary = await engine.runner.sync_all(sources)
            _print_summary(summary, sources)

    run_async(_run())


@cli.command()
@click.argument("source_id", type=int, required=False)
@click.option("--all", "all_sources", is_flag=True, help="Refresh every source")
@click.pass_context
def refresh(ctx, source_id: Optional[int], all_sources: bool):
    """Fetch the newest page of sources without moving their cursors."""
    if not all_sources and source_id is None:
        console.print("[red]Error:[/red] Specify --all or a source ID")
        sys.exit(1)
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_engine(settings) as engine:
            sources = await _select_sources(engine.db, all_sources, source_id)
            with console.status("[bold green]Refreshing..."):
                summary = await engine.runner.sync_all(sources, refresh=True)
            _print_summary(summary, sources)

    run_async(_run())


@cli.command()
@click.argument("source_id", type=int)
@click.option("--offset", default=0, help="Local offset")
@click.option("--limit", "-n", default=None, type=int, help="Videos per page")
@click.pass_context
def column(ctx, source_id: int, offset: int, limit: Optional[int]):
    """Show stored unwatched videos of a source."""
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_db(settings) as db:
            source = await db.require_source(source_id)
            browser = FeedBrowser(db, page_size=int(settings.column_page_size))
            page = await browser.column(source_id, offset=offset, limit=limit)
            _print_column(source, page)

    run_async(_run())


@cli.command()
@click.argument("source_id", type=int)
@click.option("--limit", "-n", default=None, type=int, help="Videos per page")
@click.pass_context
def more(ctx, source_id: int, limit: Optional[int]):
    """Load the next remote page of a source and show the new videos."""
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_engine(settings) as engine:
            source = await engine.db.require_source(source_id)
            if not source.cursor.can_fetch_more:
                console.print("[yellow]This source has no more pages.[/yellow]")
            with console.status("[bold green]Loading more..."):
                page = await engine.browser.load_more(source_id, limit=limit)
            if page.sync:
                console.print(
                    f"Fetched {page.sync.fetched}, inserted {page.sync.inserted}, cursor {page.sync.cursor}"
                )
            _print_column(source, page)

    run_async(_run())


@cli.command()
@click.argument("query")
@click.option("--type", "kind", type=click.Choice(["channel", "playlist"]), default="channel")
@click.option("--limit", "-n", default=10, help="Max results")
@click.pass_context
def search(ctx, query: str, kind: str, limit: int):
    """Search the catalog for channels or playlists to follow."""
    settings: Settings = ctx.obj["settings"]

    async def _run():
        catalog, _ = build_clients(settings)
        async with catalog:
            results = await catalog.search(query, SourceKind.parse(kind), max_results=limit)
        if not results:
            console.print(f"[yellow]No results for:[/yellow] {query}")
            return
        table = Table(title=f"Search: {query}")
        table.add_column("ID", style="cyan")
        table.add_column("Title", max_width=60)
        table.add_column("Type")
        for r in results:
            table.add_row(r.external_id, r.title, r.kind.value)
        console.print(table)

    run_async(_run())


@cli.command(name="hide-shorts")
@click.argument("source_id", type=int)
@click.option("--off", is_flag=True, help="Show Shorts again")
@click.pass_context
def hide_shorts(ctx, source_id: int, off: bool):
    """Hide (or show) Shorts in a source's column."""
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_db(settings) as db:
            await db.require_source(source_id)
            await db.set_hide_shorts(source_id, not off)
        console.print(f"Shorts {'shown' if off else 'hidden'} for source {source_id}")

    run_async(_run())


@cli.command()
@click.argument("source_id", type=int)
@click.pass_context
def remove(ctx, source_id: int):
    """Stop following a source and delete its videos."""
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_db(settings) as db:
            if await db.delete_source(source_id):
                console.print(f"[green]Removed source {source_id}")
            else:
                console.print(f"[yellow]No source {source_id}")

    run_async(_run())


@cli.command()
@click.pass_context
def vacuum(ctx):
    """Vacuum the database and check its integrity."""
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_db(settings) as db:
            with console.status("[bold green]Vacuuming database..."):
                await db.vacuum()
            ok = await db.integrity_check()
            stats = await db.get_stats()
        console.print(f"Database size: {stats['db_size_bytes'] / 1024:.1f} KB")
        return ok

    if not run_async(_run()):
        console.print("[red]Integrity check failed")
        sys.exit(1)
    console.print("[green]Database vacuumed, integrity ok")


@cli.command()
@click.pass_context
def status(ctx):
    """Show database and source status."""
    settings: Settings = ctx.obj["settings"]

    async def _run():
        async with open_db(settings) as db:
            stats = await db.get_stats()

            console.print("\n[bold]Database Status[/bold]")
            console.print(f"  Path: {settings.db_path}")
            console.print(f"  Size: {stats['db_size_bytes'] / 1024:.1f} KB")
            console.print(f"  Sources: {stats['total_sources']}")
            console.print(f"  Videos: {stats['total_videos']} ({stats['total_shorts']} shorts)")

            sources = await db.list_sources()
            if not sources:
                return
            console.print()
            table = Table(title="Sources")
            table.add_column("ID", justify="right")
            table.add_column("Name", style="cyan")
            table.add_column("Type")
            table.add_column("Videos", justify="right")
            table.add_column("Cursor")
            table.add_column("Last Checked")
            for s in sources:
                last = s.last_checked_at.strftime("%Y-%m-%d %H:%M") if s.last_checked_at else "never"
                cursor = "[dim]exhausted" if s.cursor.is_exhausted else str(s.cursor)
                table.add_row(
                    str(s.id),
                    s.name,
                    s.kind.value,
                    str(stats["videos_by_source"].get(s.id, 0)),
                    cursor,
                    last,
                )
            console.print(table)

    run_async(_run())


def main():
    cli()


if __name__ == "__main__":
    main()
