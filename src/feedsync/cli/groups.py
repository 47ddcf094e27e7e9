"""Group management commands for feedsync CLI."""

import typer

from ..runtime import Runtime
from .common import console, run_with_runtime

app = typer.Typer(help="Manage feed groups")


@app.command()
def add(name: str = typer.Argument(..., help="Group name")) -> None:
    """Create a group and its folder."""

    async def action(runtime: Runtime):
        await runtime.manager.add_group(name)

    run_with_runtime(action, "Failed to add group")
    console.print(f"[green]✅ Added group:[/green] {name}")


@app.command()
def remove(name: str = typer.Argument(..., help="Group name")) -> None:
    """Delete a group; its feeds move to no group."""

    async def action(runtime: Runtime):
        return await runtime.manager.remove_group(name)

    moved = run_with_runtime(action, "Failed to remove group")
    console.print(f"[green]✅ Removed group:[/green] {name}")
    if moved:
        console.print(f"[dim]Moved {len(moved)} feeds out of the group[/dim]")


@app.command("list")
def list_groups() -> None:
    """List groups with their feed counts."""

    async def action(runtime: Runtime):
        settings = runtime.repository.settings
        return [
            (group, sum(1 for feed in settings.feeds if feed.group == group))
            for group in settings.groups
        ]

    groups = run_with_runtime(action, "Failed to list groups")
    if not groups:
        console.print("[yellow]No groups configured.[/yellow]")
        return
    for name, count in groups:
        console.print(f"  {name} [dim]({count} feeds)[/dim]")
