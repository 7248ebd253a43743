"""
FeedFlow Command Line Interface
===============================

Usage:
    feedflow --help                       # Show all commands
    feedflow check-config                 # Validate configuration
    feedflow add-feed URL                 # Subscribe to a feed
    feedflow import-opml subs.opml        # Import subscriptions
    feedflow export-opml subs.opml        # Export subscriptions
    feedflow refresh                      # Refresh every feed once
    feedflow watch --interval 600         # Refresh on a schedule until interrupted
    feedflow parse-feed URL|FILE          # Show a normalized feed
    feedflow extract URL|FILE             # Print readable article content
"""

import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from .config.settings import get_settings
from .database.models import FeedDescriptor
from .ingestion.content_extractor import ContentExtractor
from .ingestion.feed_normalizer import FeedNormalizer
from .ingestion.fetcher import HttpFetcher
from .ingestion.opml import OPMLCodec
from .processing.refresh_manager import RefreshManager, RefreshReport
from .storage.sqlite_storage import SQLiteStorage
from .utils.exceptions import (
    FeedFlowError,
    ValidationError,
    get_user_friendly_message,
    is_retryable_error,
)
from .utils.logging import configure_application_logging
from .utils.validators import URLValidator

console = Console()


@click.group(invoke_without_command=True)
@click.option("--db", "db_path", help="SQLite database path (default from config)")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, db_path, debug):
    """FeedFlow - RSS, Atom and JSON Feed ingestion pipeline."""
    ctx.ensure_object(dict)
    settings = get_settings()
    ctx.obj["db_path"] = db_path or settings.database.path
    ctx.obj["debug"] = debug

    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


def _open_storage(ctx) -> SQLiteStorage:
    return SQLiteStorage.from_path(ctx.obj["db_path"])


def _fail(error: Exception) -> None:
    if isinstance(error, FeedFlowError):
        message = get_user_friendly_message(error)
    else:
        message = str(error)
    console.print(f"[bold red]❌ {message}[/bold red]")
    sys.exit(1)


@cli.command("check-config")
def check_config():
    """Show the effective configuration."""
    console.print("[bold blue]🔧 Checking FeedFlow Configuration[/bold blue]")
    settings = get_settings()

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Database", settings.database.path)
    table.add_row("Log level", settings.get_effective_log_level())
    table.add_row("Log file", settings.logging.file_path or "-")
    table.add_row("Request timeout", f"{settings.fetch.request_timeout}s")
    table.add_row("Refresh interval", f"{settings.refresh.interval_seconds:g}s")
    table.add_row("Min content length", str(settings.extraction.min_content_length))
    table.add_row("OPML title", settings.opml.default_title)

    console.print(table)
    console.print("[bold green]✅ Configuration loaded[/bold green]")


@cli.command("add-feed")
@click.argument("url")
@click.option("--title", default="", help="Display title (filled in on first refresh if empty)")
@click.option("--folder", default=None, help="Folder label")
@click.pass_context
def add_feed(ctx, url, title, folder):
    """Subscribe to a feed URL."""
    try:
        feed = FeedDescriptor(url=url, title=title, folder=folder)
    except PydanticValidationError as e:
        _fail(ValidationError(e.errors()[0]["msg"], field_name="url"))
        return

    try:
        added = _open_storage(ctx).add_feed(feed)
    except FeedFlowError as e:
        _fail(e)
        return

    if added:
        console.print(f"[green]✅ Added {feed.url}[/green]")
    else:
        console.print(f"[yellow]Already subscribed to {feed.url}[/yellow]")


@cli.command("remove-feed")
@click.argument("url")
@click.pass_context
def remove_feed(ctx, url):
    """Unsubscribe from a feed and delete its articles."""
    try:
        removed = _open_storage(ctx).remove_feed(url)
    except FeedFlowError as e:
        _fail(e)
        return

    if removed:
        console.print(f"[green]✅ Removed {url}[/green]")
    else:
        console.print(f"[yellow]No feed with URL {url}[/yellow]")
        sys.exit(1)


@cli.command("list-feeds")
@click.pass_context
def list_feeds(ctx):
    """List subscribed feeds."""
    feeds = _open_storage(ctx).list_feeds()
    if not feeds:
        console.print("No feeds subscribed")
        return

    table = Table(title=f"Feeds ({len(feeds)})")
    table.add_column("Title", style="cyan")
    table.add_column("URL")
    table.add_column("Folder")
    table.add_column("Last fetched")
    for feed in feeds:
        table.add_row(
            feed.display_title,
            feed.url,
            feed.folder or "",
            feed.last_fetched_at.strftime("%Y-%m-%d %H:%M") if feed.last_fetched_at else "never",
        )
    console.print(table)


@cli.command("import-opml")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_opml_command(ctx, path):
    """Import subscriptions from an OPML file."""
    try:
        document = OPMLCodec().parse_file(path)
        added = _open_storage(ctx).add_feeds(document.to_descriptors())
    except FeedFlowError as e:
        _fail(e)
        return

    label = f" from '{document.title}'" if document.title else ""
    console.print(
        f"[green]✅ Imported {added} new feeds{label} "
        f"({len(document.feeds)} in file)[/green]"
    )


@cli.command("export-opml")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--title", default=None, help="Document title")
@click.pass_context
def export_opml_command(ctx, path, title):
    """Export subscriptions to an OPML file."""
    codec = OPMLCodec()
    try:
        feeds = _open_storage(ctx).list_feeds()
        codec.export_to_file(codec.from_descriptors(feeds), path, title)
    except (FeedFlowError, OSError) as e:
        _fail(e)
        return
    console.print(f"[green]✅ Exported {len(feeds)} feeds to {path}[/green]")


def _print_report(report: Optional[RefreshReport]) -> None:
    if report is None:
        console.print("[yellow]A refresh is already running[/yellow]")
        return

    console.print(
        f"Refreshed {report.succeeded}/{report.attempted} feeds, "
        f"{report.new_articles} new articles"
    )
    if report.failures:
        table = Table(title="Failures")
        table.add_column("Feed", style="cyan")
        table.add_column("Error", style="red")
        table.add_column("Retry")
        for url, message in report.failures.items():
            error = report.errors.get(url)
            retryable = isinstance(error, FeedFlowError) and is_retryable_error(error)
            table.add_row(url, message, "yes" if retryable else "no")
        console.print(table)
    if report.last_error and report.last_error_message not in report.failures.values():
        console.print(f"[red]Last error: {report.last_error_message}[/red]")


async def _refresh(storage: SQLiteStorage, feed_url: Optional[str]) -> Optional[RefreshReport]:
    async with HttpFetcher() as fetcher:
        manager = RefreshManager(storage, FeedNormalizer(fetcher))
        if feed_url:
            feed = storage.get_feed(feed_url)
            if feed is None:
                raise ValidationError(f"Not subscribed to {feed_url}", field_name="url")
            return await manager.refresh_feed(feed)
        return await manager.refresh_all()


@cli.command()
@click.option("--feed", "feed_url", default=None, help="Refresh only this feed URL")
@click.pass_context
def refresh(ctx, feed_url):
    """Refresh feeds once and store new articles."""
    try:
        report = asyncio.run(_refresh(_open_storage(ctx), feed_url))
    except FeedFlowError as e:
        _fail(e)
        return
    _print_report(report)


async def _watch(storage: SQLiteStorage, interval: float) -> None:
    async with HttpFetcher() as fetcher:
        manager = RefreshManager(storage, FeedNormalizer(fetcher), interval_seconds=interval)
        _print_report(await manager.refresh_all())
        task = manager.start_background_refresh(interval)
        try:
            await task
        finally:
            manager.stop_background_refresh()


@cli.command()
@click.option("--interval", type=float, default=None, help="Seconds between refreshes")
@click.pass_context
def watch(ctx, interval):
    """Refresh all feeds on a schedule until interrupted."""
    interval = interval or get_settings().refresh.interval_seconds
    console.print(f"[blue]Refreshing every {interval:g}s, Ctrl+C to stop[/blue]")
    try:
        asyncio.run(_watch(_open_storage(ctx), interval))
    except KeyboardInterrupt:
        console.print("Stopped")


@cli.command("parse-feed")
@click.argument("source")
@click.option("--limit", default=20, show_default=True, help="Articles to show")
def parse_feed_command(source, limit):
    """Fetch (URL) or read (file) a feed and show it normalized."""

    async def run():
        if URLValidator.is_valid_url(source):
            async with HttpFetcher() as fetcher:
                return await FeedNormalizer(fetcher).fetch_feed(source)
        return FeedNormalizer().parse(Path(source).read_bytes())

    try:
        feed = asyncio.run(run())
    except (FeedFlowError, OSError) as e:
        _fail(e)
        return

    console.print(f"[bold]{feed.title}[/bold] ({feed.feed_format})")
    if feed.site_url:
        console.print(feed.site_url)

    table = Table(title=f"Articles ({len(feed.articles)})")
    table.add_column("Published")
    table.add_column("Title", style="cyan")
    table.add_column("URL")
    for article in feed.articles[:limit]:
        table.add_row(
            article.published_at.strftime("%Y-%m-%d") if article.published_at else "",
            article.title,
            article.url,
        )
    console.print(table)


@cli.command()
@click.argument("source")
def extract(source):
    """Print the readable content of an article URL or HTML file."""

    async def run():
        if URLValidator.is_valid_url(source):
            async with HttpFetcher() as fetcher:
                return await ContentExtractor(fetcher).extract_from_url(source)
        html = Path(source).read_bytes()
        extractor = ContentExtractor()
        return extractor.extract_from_html(
            html.decode(extractor.determine_encoding(None, html), errors="replace")
        )

    try:
        content = asyncio.run(run())
    except (FeedFlowError, OSError) as e:
        _fail(e)
        return

    click.echo(content)


@cli.command()
@click.option("--feed", "feed_url", default=None, help="Only articles of this feed")
@click.option("--limit", default=20, show_default=True, help="Articles to show")
@click.pass_context
def articles(ctx, feed_url, limit):
    """Show stored articles, newest first."""
    items = _open_storage(ctx).get_articles(feed_url=feed_url, limit=limit)
    if not items:
        console.print("No articles stored")
        return

    table = Table(title=f"Articles ({len(items)})")
    table.add_column("Published")
    table.add_column("Title", style="cyan")
    table.add_column("Author")
    table.add_column("URL")
    for article in items:
        table.add_row(
            article.published_at.strftime("%Y-%m-%d") if article.published_at else "",
            article.title,
            article.author or "",
            article.url,
        )
    console.print(table)


if __name__ == "__main__":
    cli()
