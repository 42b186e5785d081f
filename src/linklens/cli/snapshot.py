"""CLI command: linklens snapshot <file> — summarise a capture file."""

from __future__ import annotations

import asyncio
from collections import Counter
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from linklens.capture.snapshot import read_snapshot
from linklens.config import LinkLensConfig

console = Console()


@click.command()
@click.argument("capture_file", type=click.Path(dir_okay=False))
@click.option("--limit", "-n", type=int, default=20, help="Packets to list.")
@click.pass_context
def snapshot(ctx: click.Context, capture_file: str, limit: int) -> None:
    """Decode a capture file and print packet and host statistics."""
    config: LinkLensConfig = ctx.obj["config"]
    result = asyncio.run(
        read_snapshot(
            Path(capture_file),
            limit=limit,
            tshark=config.tshark_path,
            timeout=config.snapshot_timeout,
        )
    )

    if result.total == 0:
        console.print("[yellow]No packets decoded.[/yellow]")
        return

    table = Table(title=f"First {len(result.records)} of {result.total} packets")
    table.add_column("Time", justify="right")
    table.add_column("Source", style="cyan")
    table.add_column("Destination", style="cyan")
    table.add_column("Protocol")
    table.add_column("Length", justify="right")
    table.add_column("Info", max_width=60)
    for record in result.records:
        table.add_row(
            f"{record.time_offset:.3f}",
            record.source,
            record.destination,
            record.protocol,
            str(record.length),
            record.info,
        )
    console.print(table)

    _print_histogram("Protocols", result.protocols)
    _print_histogram("Top sources", result.sources)
    _print_histogram("Top destinations", result.destinations)


def _print_histogram(title: str, counts: Counter[str], top: int = 10) -> None:
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column(justify="right")
    for label, count in counts.most_common(top):
        table.add_row(label, str(count))
    console.print(table)
