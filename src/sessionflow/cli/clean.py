"""Clean command: irreversibly wipe local session state."""

from __future__ import annotations

import click

from ._common import build_engine, console, home_option


def register_clean_commands(main: click.Group) -> None:
    """Register the clean command."""

    @main.command("clean")
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
    @home_option
    def clean(yes, home):
        """Delete local session data of every supported assistant CLI.

        This cannot be undone. Synced snapshots in the remote
        repository are not touched.
        """
        engine = build_engine(home)

        if not yes:
            console.print("  Session directories to wipe:")
            for source in engine.config.sources:
                console.print(f"    [dim]{source}[/]")
            click.confirm("  Permanently delete their contents?", abort=True)

        report = engine.clean()

        console.print(
            f"Local AI CLI session state has been securely cleaned "
            f"([green]{len(report.removed)} removed[/]"
            + (f", [red]{len(report.refused)} refused[/]" if report.refused else "")
            + (f", [red]{len(report.failed)} failed[/]" if report.failed else "")
            + ")."
        )
