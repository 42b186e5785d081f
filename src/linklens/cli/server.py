"""CLI command: linklens server — start the web portal."""

from __future__ import annotations

import click
import uvicorn
from rich.console import Console

from linklens.config import LinkLensConfig

console = Console(stderr=True)


@click.command()
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to listen on (default: 5001).",
)
@click.pass_context
def server(ctx: click.Context, port: int | None) -> None:
    """Start the LinkLens web portal."""
    config: LinkLensConfig = ctx.obj["config"]
    if port is not None:
        config.web_port = port

    console.print(
        f"[bold]LinkLens[/bold] portal starting on "
        f"[cyan]http://{config.web_host}:{config.web_port}[/cyan]"
    )
    console.print("  [dim]Bound to 127.0.0.1 only[/dim]")
    console.print(
        f"  Live capture WebSocket: "
        f"[cyan]ws://{config.web_host}:{config.web_port}/api/ws/captures[/cyan]\n"
    )

    from linklens.web.app import create_app

    app = create_app(config)
    uvicorn.run(
        app,
        host=config.web_host,
        port=config.web_port,
        log_level="debug" if config.verbose else "info",
    )
