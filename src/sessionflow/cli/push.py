"""Push command: debounced trigger and the detached worker it starts."""

from __future__ import annotations

import sys

import click

from ._common import build_engine, home_option
from ..engine import PushOutcome, TriggerOutcome, configure_worker_logging


def register_push_commands(main: click.Group) -> None:
    """Register the push command."""

    @main.command("push")
    @click.option("--daemon", is_flag=True, hidden=True,
                  help="Run the sync in this process (internal worker marker).")
    @home_option
    def push(daemon, home):
        """Sync sessions to the private repository in the background.

        Safe to call from hooks as often as you like: calls within
        the debounce window of a running or recent sync do nothing.
        """
        engine = build_engine(home)

        if not daemon:
            outcome = engine.trigger_push()
            if outcome is TriggerOutcome.FAILED:
                sys.exit(1)
            return

        configure_worker_logging(engine.config.worker_log_path)
        outcome = engine.run_push_worker()
        if outcome in (PushOutcome.BLOCKED, PushOutcome.FAILED):
            sys.exit(1)
