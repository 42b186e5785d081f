"""CLI command: linklens interfaces — list capture interfaces."""

from __future__ import annotations

import click
from rich.console import Console

from linklens.capture.command import list_interfaces
from linklens.config import LinkLensConfig

console = Console()


@click.command()
@click.pass_context
def interfaces(ctx: click.Context) -> None:
    """List the network interfaces available for capture."""
    config: LinkLensConfig = ctx.obj["config"]
    names = list_interfaces()
    if not names:
        console.print("[yellow]No interfaces found.[/yellow]")
        return
    for name in names:
        marker = " [dim](default)[/dim]" if name == config.default_interface else ""
        console.print(f"  {name}{marker}")
