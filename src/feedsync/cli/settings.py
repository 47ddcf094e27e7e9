"""Settings backup commands for feedsync CLI."""

from pathlib import Path
from typing import Optional

import typer

from ..runtime import Runtime
from .common import console, run_with_runtime

app = typer.Typer(help="Back up or restore feeds and settings as JSON")


@app.command("export")
def export_settings(
    path: Optional[Path] = typer.Argument(None, help="Output file (stdout if omitted)"),
) -> None:
    """Export feeds, groups, article states and global settings."""

    async def action(runtime: Runtime):
        return runtime.repository.export_json()

    document = run_with_runtime(action, "Settings export failed")
    if path is None:
        typer.echo(document)
        return

    path.write_text(document, encoding="utf-8")
    console.print(f"[green]✅ Exported settings to[/green] {path}")


@app.command("import")
def import_settings(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Backup file"),
) -> None:
    """Replace current settings with a backup."""
    text = path.read_text(encoding="utf-8")

    async def action(runtime: Runtime):
        settings = await runtime.repository.import_json(text)
        runtime.storage.initialize_folders(settings)
        return settings

    settings = run_with_runtime(action, "Settings import failed")
    console.print(
        f"[green]✅ Imported {len(settings.feeds)} feeds and {len(settings.groups)} groups[/green]"
    )
