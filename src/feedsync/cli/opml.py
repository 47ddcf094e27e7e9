"""OPML import/export commands for feedsync CLI."""

from pathlib import Path
from typing import Optional

import typer

from ..runtime import Runtime
from .common import console, run_with_runtime

app = typer.Typer(help="Import or export OPML subscription lists")


@app.command("import")
def import_opml(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="OPML file"),
) -> None:
    """Import feeds from an OPML file, validating each one."""
    text = path.read_text(encoding="utf-8")

    async def action(runtime: Runtime):
        return await runtime.codec.import_opml(text)

    result = run_with_runtime(action, "OPML import failed")

    console.print(
        f"[bold]Imported: {result.imported}, "
        f"Duplicates: {len(result.duplicates)}, Errors: {len(result.errors)}[/bold]"
    )
    for issue in result.duplicates:
        console.print(f"  [yellow]↺ {issue.title}[/yellow] [dim]{issue.url}[/dim]")
    for issue in result.errors:
        console.print(f"  [red]✗ {issue.title}[/red]: {issue.error} [dim]{issue.url}[/dim]")

    if result.errors and not result.imported:
        raise typer.Exit(1)


@app.command("export")
def export_opml(
    path: Optional[Path] = typer.Argument(None, help="Output file (stdout if omitted)"),
) -> None:
    """Export all feeds as OPML."""

    async def action(runtime: Runtime):
        return runtime.codec.export()

    document = run_with_runtime(action, "OPML export failed")
    if path is None:
        typer.echo(document)
        return

    path.write_text(document, encoding="utf-8")
    console.print(f"[green]✅ Exported OPML to[/green] {path}")
