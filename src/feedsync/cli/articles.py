"""Article state commands for feedsync CLI."""

from pathlib import Path
from typing import Optional

import typer

from ..article_state import ArticleStateStore
from ..runtime import Runtime
from .common import console, run_with_runtime

app = typer.Typer(help="Track read/deleted article state")


@app.command()
def read(
    feed_url: str = typer.Argument(..., help="URL of the article's feed"),
    link: str = typer.Argument(..., help="Article link"),
    file: Optional[Path] = typer.Option(
        None, "--file", "-f", help="Article file whose status line to flip to read"
    ),
) -> None:
    """Mark an article read."""

    async def action(runtime: Runtime):
        ArticleStateStore(runtime.repository).mark_read(feed_url, link)
        await runtime.repository.save()
        if file is not None:
            return runtime.storage.mark_file_read(file)
        return False

    updated = run_with_runtime(action, "Failed to mark article read")
    console.print("[green]✓ Marked read[/green]")
    if updated:
        console.print(f"[dim]Updated status in {file}[/dim]")


@app.command()
def delete(
    feed_url: str = typer.Argument(..., help="URL of the article's feed"),
    link: str = typer.Argument(..., help="Article link"),
) -> None:
    """Mark an article deleted so future syncs never recreate it."""

    async def action(runtime: Runtime):
        ArticleStateStore(runtime.repository).mark_deleted(feed_url, link)
        await runtime.repository.save()

    run_with_runtime(action, "Failed to mark article deleted")
    console.print("[green]🗑 Marked deleted[/green] [dim](existing file left in place)[/dim]")


@app.command()
def prune(
    days: Optional[int] = typer.Option(
        None, "--days", help="Retention window (defaults to the global retention_days)"
    ),
) -> None:
    """Drop article states older than the retention window."""

    async def action(runtime: Runtime):
        retention = days if days is not None else runtime.repository.settings.retention_days
        removed = ArticleStateStore(runtime.repository).prune(retention)
        if removed:
            await runtime.repository.save()
        return removed

    removed = run_with_runtime(action, "Failed to prune article states")
    console.print(f"[green]✅ Pruned {removed} article states[/green]")
