"""Feed management commands for feedsync CLI."""

from datetime import datetime, timezone
from typing import Optional

import typer
from rich.table import Table

from ..models import FeedStatus, FeedType
from ..runtime import Runtime
from .common import console, run_with_runtime

app = typer.Typer(help="Manage feed subscriptions")


def _format_ms(value: Optional[int]) -> str:
    if not value:
        return "Never"
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


@app.command()
def add(
    url: str = typer.Argument(..., help="RSS or Atom feed URL"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Display name"),
    group: str = typer.Option("", "--group", "-g", help="Group (subfolder)"),
    single: bool = typer.Option(
        False, "--single", help="Append all articles to one file instead of one file each"
    ),
) -> None:
    """Add a feed after validating it."""

    async def action(runtime: Runtime):
        return await runtime.manager.add_feed(
            url,
            title=title,
            group=group,
            feed_type=FeedType.SINGLE if single else FeedType.MULTIPLE,
        )

    console.print("[yellow]Validating feed...[/yellow]")
    feed = run_with_runtime(action, "Failed to add feed")
    console.print(f"[green]✅ Added feed:[/green] {feed.title}")
    console.print(f"[dim]URL: {feed.url}[/dim]")
    console.print(f"[dim]ID: {feed.id}[/dim]")


@app.command()
def remove(
    feed_id: str = typer.Argument(..., help="Feed id (or unique prefix)"),
    keep_files: bool = typer.Option(
        False, "--keep-files", help="Keep the feed's folder or file on disk"
    ),
) -> None:
    """Remove a feed and, by default, its articles."""

    async def action(runtime: Runtime):
        return await runtime.manager.remove_feed(feed_id, delete_files=not keep_files)

    feed = run_with_runtime(action, "Failed to remove feed")
    console.print(f"[green]✅ Removed feed:[/green] {feed.title}")


@app.command("list")
def list_feeds(
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Only this group"),
) -> None:
    """List configured feeds."""

    async def action(runtime: Runtime):
        return runtime.manager.list_feeds(group)

    feeds = run_with_runtime(action, "Failed to list feeds")
    if not feeds:
        console.print("[yellow]No feeds configured. Use 'feed add' to add one.[/yellow]")
        return

    table = Table(title="Feeds", show_lines=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Group", style="magenta")
    table.add_column("Type")
    table.add_column("Status", style="green")
    table.add_column("Last Fetch", style="dim")
    table.add_column("Error", style="red")

    for feed in feeds:
        status = "✅ Active" if feed.is_active else "⏸ Paused"
        error = feed.last_error.message if feed.last_error else "—"
        table.add_row(
            feed.id[:8],
            feed.title if len(feed.title) <= 30 else feed.title[:27] + "...",
            feed.group or "—",
            feed.type.value,
            status,
            _format_ms(feed.last_successful_fetch),
            error,
        )

    console.print(table)
    console.print(f"\n[dim]Total feeds: {len(feeds)}[/dim]")


@app.command()
def pause(feed_id: str = typer.Argument(..., help="Feed id (or unique prefix)")) -> None:
    """Stop syncing a feed."""

    async def action(runtime: Runtime):
        return await runtime.manager.set_status(feed_id, FeedStatus.PAUSED)

    feed = run_with_runtime(action, "Failed to pause feed")
    console.print(f"[green]⏸ Paused:[/green] {feed.title}")


@app.command()
def resume(feed_id: str = typer.Argument(..., help="Feed id (or unique prefix)")) -> None:
    """Resume syncing a paused feed."""

    async def action(runtime: Runtime):
        return await runtime.manager.set_status(feed_id, FeedStatus.ACTIVE)

    feed = run_with_runtime(action, "Failed to resume feed")
    console.print(f"[green]▶ Resumed:[/green] {feed.title}")


@app.command()
def move(
    feed_id: str = typer.Argument(..., help="Feed id (or unique prefix)"),
    group: str = typer.Argument(..., help="Target group, or '-' for no group"),
) -> None:
    """Move a feed (and its files) to another group."""
    target = "" if group == "-" else group

    async def action(runtime: Runtime):
        return await runtime.manager.move_feed(feed_id, target)

    feed = run_with_runtime(action, "Failed to move feed")
    console.print(f"[green]✅ Moved {feed.title} to[/green] {feed.group or '(no group)'}")


@app.command()
def toggle(
    feed_id: str = typer.Argument(..., help="Feed id (or unique prefix)"),
    feature: str = typer.Argument(..., help="summarize, transcribe or rewrite"),
    enabled: bool = typer.Option(True, "--on/--off", help="Enable or disable"),
) -> None:
    """Enable or disable an LLM feature for a feed."""

    async def action(runtime: Runtime):
        return await runtime.manager.set_feature(feed_id, feature, enabled)

    feed = run_with_runtime(action, "Failed to toggle feature")
    state = "enabled" if enabled else "disabled"
    console.print(f"[green]✅ {feature} {state} for[/green] {feed.title}")


@app.command()
def update(
    feed_id: str = typer.Argument(..., help="Feed id (or unique prefix)"),
    title: Optional[str] = typer.Option(None, "--title", help="New title (renames output)"),
    max_articles: Optional[int] = typer.Option(
        None, "--max-articles", help="Articles per sync (overrides global default)"
    ),
    interval: Optional[int] = typer.Option(
        None, "--interval", help="Minutes between scheduled syncs"
    ),
    filter_duplicates: Optional[bool] = typer.Option(
        None, "--filter-duplicates/--no-filter-duplicates", help="Skip already-seen items"
    ),
    feed_type: Optional[FeedType] = typer.Option(None, "--type", help="multiple or single"),
) -> None:
    """Edit feed settings."""
    changes = {}
    if title is not None:
        changes["title"] = title
    if max_articles is not None:
        changes["max_articles"] = max_articles
    if interval is not None:
        changes["update_interval"] = interval
    if filter_duplicates is not None:
        changes["filter_duplicates"] = filter_duplicates
    if feed_type is not None:
        changes["type"] = feed_type

    if not changes:
        console.print("[yellow]Nothing to update[/yellow]")
        return

    async def action(runtime: Runtime):
        return await runtime.manager.update_feed(feed_id, **changes)

    feed = run_with_runtime(action, "Failed to update feed")
    console.print(f"[green]✅ Updated:[/green] {feed.title}")
