"""Root CLI group and version flag."""

import click

from agentwire import __version__
from agentwire.commands.run import run


@click.group()
@click.version_option(version=__version__, prog_name="agentwire")
def cli() -> None:
    """agentwire — drive a CLI coding agent and assemble its transcript."""


cli.add_command(run)
