"""
sessionflow CLI — the command line.

Each command lives in its own module and is attached to the main
Click group through a register function. Running ``sessionflow``
with no command is the same as ``sessionflow push``.

Entry point: sessionflow.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="sessionflow")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """sessionflow — secure session sync for AI coding assistants.

    Mirror assistant sessions, scan for secrets, publish privately.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        ctx.invoke(main.commands["push"])


# ---------------------------------------------------------------------------
# Register all commands from modular files
# ---------------------------------------------------------------------------

from .push import register_push_commands
from .restore import register_restore_commands
from .clean import register_clean_commands

register_push_commands(main)
register_restore_commands(main)
register_clean_commands(main)
