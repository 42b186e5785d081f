"""CLI command: linklens capture <target> — run a live capture in the terminal."""

from __future__ import annotations

import asyncio
import signal
import sys

import click
from rich.console import Console
from rich.table import Table

from linklens.config import LinkLensConfig
from linklens.errors import LinkLensError
from linklens.session.manager import CaptureManager
from linklens.session.models import (
    CaptureSession,
    Record,
    SessionState,
    StatusTick,
    Terminated,
)

console = Console(stderr=True)
out = Console()

_STATE_COLORS = {
    SessionState.COMPLETED: "green",
    SessionState.STOPPED: "yellow",
    SessionState.ERRORED: "red",
}


@click.command()
@click.argument("target")
@click.option("--duration", "-d", type=int, default=None, help="Seconds to capture.")
@click.option("--interface", "-i", default=None, help="Interface to capture on.")
@click.option("--quiet", "-q", is_flag=True, help="Only print the summary.")
@click.pass_context
def capture(
    ctx: click.Context,
    target: str,
    duration: int | None,
    interface: str | None,
    quiet: bool,
) -> None:
    """Capture traffic to and from TARGET, printing packets as they arrive."""
    config: LinkLensConfig = ctx.obj["config"]
    try:
        session = asyncio.run(_capture(config, target, duration, interface, quiet))
    except LinkLensError as exc:
        console.print(f"[red]{exc.message}[/red]")
        if exc.hint:
            console.print(f"  [dim]{exc.hint}[/dim]")
        sys.exit(2)

    _print_summary(session)
    if session.state == SessionState.ERRORED:
        sys.exit(1)


async def _capture(
    config: LinkLensConfig,
    target: str,
    duration: int | None,
    interface: str | None,
    quiet: bool,
) -> CaptureSession:
    manager = CaptureManager(config)
    session = await manager.start(target, duration=duration, interface=interface)
    subscription = manager.subscribe(session.id)

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, manager.stop, session.id)

    console.print(
        f"[bold]LinkLens[/bold] capturing [cyan]{session.target}[/cyan] "
        f"on [cyan]{session.interface}[/cyan] for {session.duration}s "
        "[dim](Ctrl-C to stop)[/dim]\n"
    )

    try:
        async for event in subscription:
            if isinstance(event, Record) and not quiet:
                r = event.record
                out.print(
                    f"{r.time_offset:>9.3f}  [cyan]{r.source}[/cyan] → "
                    f"[cyan]{r.destination}[/cyan]  {r.protocol:<8} {r.length:>6}  "
                    f"[dim]{r.info}[/dim]",
                    highlight=False,
                )
            elif isinstance(event, StatusTick) and quiet:
                console.print(
                    f"  [dim]{int(event.elapsed)}s, {event.packet_count} packets[/dim]"
                )
            elif isinstance(event, Terminated) and event.error:
                console.print(f"[red]{event.error}[/red]")
    finally:
        loop.remove_signal_handler(signal.SIGINT)

    return await manager.wait(session.id)


def _print_summary(session: CaptureSession) -> None:
    console.print("\n[bold]Capture Summary[/bold]")
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column()

    color = _STATE_COLORS.get(session.state, "white")
    table.add_row("Session ID", session.id)
    table.add_row("Target", session.target)
    table.add_row("Interface", session.interface)
    table.add_row("State", f"[{color}]{session.state.value}[/{color}]")
    table.add_row("Packets", str(session.packet_count))
    table.add_row("Elapsed", f"{session.elapsed():.1f}s")
    table.add_row("Capture File", str(session.capture_file))
    console.print(table)
