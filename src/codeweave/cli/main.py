"""Click CLI entry point for CodeWeave."""

from __future__ import annotations

import logging

import click

from codeweave._version import __version__


@click.group()
@click.version_option(version=__version__, prog_name="codeweave")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug)")
def cli(verbose: int):
    """CodeWeave - multi-backend code generation with built-in review.

    Generate code from a prompt, validate it, and keep a per-project history.
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


# Import and register subcommands
from codeweave.cli.generate_cmd import generate  # noqa: E402
from codeweave.cli.validate_cmd import validate  # noqa: E402
from codeweave.cli.history_cmd import history  # noqa: E402
from codeweave.cli.backends_cmd import backends  # noqa: E402
from codeweave.cli.feedback_cmd import feedback  # noqa: E402

cli.add_command(generate)
cli.add_command(validate)
cli.add_command(history)
cli.add_command(backends)
cli.add_command(feedback)


if __name__ == "__main__":
    cli()
