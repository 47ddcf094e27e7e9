"""Main entry point for feedsync - just wiring, no logic."""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console

from .cli import articles, feeds, groups, opml, settings
from .cli.common import load_config, run_with_runtime
from .config import Config
from .defaults import config_dir, ensure_config
from .locking import DaemonAlreadyRunningError, acquire_daemon_lock
from .observability import get_event_log
from .runtime import Runtime, open_runtime
from .settings_store import SettingsRepository
from .storage import FeedStorage

# Load environment variables from ~/.config/feedsync/.env
dotenv_path = config_dir() / ".env"
if dotenv_path.exists():
    load_dotenv(dotenv_path)

console = Console()

app = typer.Typer(
    name="feedsync",
    help="feedsync - Sync RSS/Atom feeds into a Markdown vault",
    add_completion=False,
)

app.add_typer(feeds.app, name="feed", help="Manage feed subscriptions")
app.add_typer(groups.app, name="group", help="Manage feed groups")
app.add_typer(opml.app, name="opml", help="Import or export OPML")
app.add_typer(articles.app, name="article", help="Read/deleted article state")
app.add_typer(settings.app, name="settings", help="Back up or restore settings")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Sync RSS/Atom feeds into a Markdown vault."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def init(
    vault: Optional[Path] = typer.Option(
        None, "--vault", help="Vault directory for a newly created config"
    ),
) -> None:
    """Create config, settings and vault folders."""
    config_file = ensure_config(vault.expanduser() if vault else None)
    config = load_config()

    repository = SettingsRepository.load(config.settings_path)
    if not config.settings_path.exists():
        asyncio.run(repository.save())
        console.print(f"Created {config.settings_path}")

    FeedStorage(config.vault_path).initialize_folders(repository.settings)
    console.print(f"[green]✅ Ready.[/green] Config: {config_file}")
    console.print(f"[dim]Vault: {config.vault_path / repository.settings.rss_folder}[/dim]")


async def run_daemon(config: Config) -> None:
    """Run the scheduler until SIGINT/SIGTERM."""
    async with open_runtime(config, console=console) as runtime:
        runtime.storage.initialize_folders(runtime.repository.settings)

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await runtime.scheduler.start()
        console.print(
            f"[green]✅ Scheduler started - {len(runtime.scheduler.scheduled_feed_ids())} feeds, "
            f"global cadence {runtime.repository.settings.fetch_frequency.value}[/green]"
        )
        console.print("[dim]Press Ctrl+C to stop[/dim]\n")

        try:
            await stop_event.wait()
        finally:
            console.print("\n[yellow]Stopping scheduler...[/yellow]")
            runtime.scheduler.stop()

    get_event_log().prune()


async def _sync_all(runtime: Runtime):
    runtime.storage.initialize_folders(runtime.repository.settings)
    return await runtime.engine.sync_all_feeds()


@app.command()
def run(
    once: bool = typer.Option(False, "--once", help="Sync all feeds once and exit"),
) -> None:
    """Start the feed daemon."""
    if once:
        summary = run_with_runtime(_sync_all, "Sync failed")
        _print_summary(summary)
        if summary.failed and not summary.succeeded:
            raise typer.Exit(1)
        return

    config = load_config()
    console.print("[bold blue]Starting feedsync daemon[/bold blue]")
    try:
        with acquire_daemon_lock():
            asyncio.run(run_daemon(config))
    except DaemonAlreadyRunningError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)


@app.command()
def sync(
    feed_id: Optional[str] = typer.Argument(None, help="Sync only this feed"),
) -> None:
    """Sync one feed or all active feeds now."""
    if feed_id is None:
        summary = run_with_runtime(_sync_all, "Sync failed")
        _print_summary(summary)
        return

    async def action(runtime: Runtime):
        feed = runtime.manager.get_feed(feed_id)
        return await runtime.engine.sync_feed(feed)

    result = run_with_runtime(action, "Sync failed")
    console.print(
        f"[green]✅ {result.feed_title}: {result.items_written} new articles "
        f"({result.items_fetched} in feed)[/green]"
    )


def _print_summary(summary) -> None:
    console.print(
        f"\n[bold]Synced {len(summary.succeeded)} feeds, "
        f"{len(summary.failed)} failed, {len(summary.skipped)} skipped[/bold]"
    )
    for result in summary.failed:
        console.print(f"  [red]✗ {result.feed_title}[/red]: {result.error}")


if __name__ == "__main__":
    app()
