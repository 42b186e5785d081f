"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from linklens import __version__
from linklens.config import LinkLensConfig


@click.group()
@click.version_option(version=__version__, prog_name="linklens")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """LinkLens — live traffic capture and security tooling portal."""
    ctx.ensure_object(dict)
    config = LinkLensConfig.load(config_path)
    config.verbose = verbose
    ctx.obj["config"] = config

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from linklens.cli.capture import capture  # noqa: F811
    from linklens.cli.interfaces import interfaces  # noqa: F811
    from linklens.cli.server import server  # noqa: F811
    from linklens.cli.snapshot import snapshot  # noqa: F811

    main.add_command(capture)
    main.add_command(interfaces)
    main.add_command(server)
    main.add_command(snapshot)


_register_commands()
