"""Helpers shared by CLI command modules."""

import asyncio
from typing import Awaitable, Callable, TypeVar

import typer
from rich.console import Console

from ..config import Config
from ..errors import FeedSyncError, describe_error
from ..runtime import Runtime, open_runtime

console = Console()

T = TypeVar("T")


def load_config() -> Config:
    """Load config.toml or exit with a readable error."""
    try:
        return Config.from_file()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(1)


def run_with_runtime(action: Callable[[Runtime], Awaitable[T]], failure: str) -> T:
    """Run an async action against freshly wired components.

    Domain errors are printed as one-line messages and exit with status 1.
    """
    config = load_config()

    async def runner() -> T:
        async with open_runtime(config, console=console) as runtime:
            return await action(runtime)

    try:
        return asyncio.run(runner())
    except FeedSyncError as e:
        console.print(f"[red]❌ {failure}:[/red] {describe_error(e)}")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]❌ {failure}:[/red] {e}")
        raise typer.Exit(1)
