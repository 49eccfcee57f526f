"""Restore command: pull the latest sanitized snapshot."""

from __future__ import annotations

import sys

import click

from ._common import build_engine, console, home_option
from ..engine import RestoreOutcome


def register_restore_commands(main: click.Group) -> None:
    """Register the restore command."""

    @main.command("restore")
    @home_option
    def restore(home):
        """Pull the latest snapshot into the workspace.

        Nothing is copied back into your assistant directories; the
        workspace path is printed so you can inspect and copy by hand.
        """
        engine = build_engine(home)
        outcome = engine.restore()

        if outcome is not RestoreOutcome.RESTORED:
            console.print("[bold red]Restore failed.[/] See the audit log for details.")
            sys.exit(1)

        console.print(
            f"\nRestore complete. Sanitized sessions are located in: "
            f"[cyan]{engine.config.workspace}[/]\n"
        )
