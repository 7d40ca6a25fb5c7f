"""Orchestra CLI: entry point for the run and status commands."""

import click

from orchestra import __version__


@click.group()
@click.version_option(version=__version__, package_name="orchestra-loop")
def main() -> None:
    """Orchestra: an autonomous orchestrator/specialist project loop."""


# Register subcommands (lazy imports keep startup fast)
from .run_cmd import run
from .status_cmd import status

main.add_command(run)
main.add_command(status)
